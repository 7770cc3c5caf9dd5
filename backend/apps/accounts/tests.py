from django.test import TestCase
from apps.accounts.models import Store, User


class UserManagerTests(TestCase):

    def setUp(self):
        self.store = Store.objects.create(name='Tienda Roles')

    def test_create_user_defaults_to_confirmer(self):
        user = User.objects.create_user(email='New@Example.COM', password='TestPass123!', store=self.store)

        self.assertEqual(user.role, User.Role.CONFIRMER)
        self.assertEqual(user.email, 'New@example.com')
        self.assertTrue(user.check_password('TestPass123!'))

    def test_unknown_role_rejected(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='x@example.com', role='COURIER', store=self.store)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', store=self.store)

    def test_superuser_is_owner(self):
        user = User.objects.create_superuser(email='root@example.com', password='TestPass123!')

        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_superuser)
        self.assertEqual(user.role, User.Role.OWNER)


class RolePrivilegeTests(TestCase):

    def test_force_and_delete_privileges(self):
        expectations = {
            User.Role.OWNER: (True, True),
            User.Role.ADMIN: (True, False),
            User.Role.LOGISTICS: (False, False),
            User.Role.CONFIRMER: (False, False),
            User.Role.ACCOUNTANT: (False, False),
        }
        for role, (can_force, can_delete) in expectations.items():
            user = User(email=f'{role.lower()}@example.com', role=role)
            self.assertEqual(user.can_force_transitions, can_force, role)
            self.assertEqual(user.can_hard_delete, can_delete, role)
