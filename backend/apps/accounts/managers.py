from django.contrib.auth.base_user import BaseUserManager


class UserManager(BaseUserManager):
    """
    Manager for dashboard operators, who log in with their email.
    """

    def _check_role(self, role):
        valid_roles = {choice for choice, _label in self.model.Role.choices}
        if role not in valid_roles:
            raise ValueError(f"Unknown role '{role}'. Valid roles: {', '.join(sorted(valid_roles))}")

    def create_user(self, email, password=None, role=None, store=None, **extra_fields):

        if not email:
            raise ValueError("Email is required")

        role = role or self.model.Role.CONFIRMER
        self._check_role(role)

        user = self.model(
            email=self.normalize_email(email),
            role=role,
            store=store,
            **extra_fields
        )
        user.set_password(password)
        user.save(using=self._db)

        return user

    def create_superuser(self, email, password=None, **extra_fields):
        # Platform staff; not tied to a store until one is assigned
        extra_fields["is_staff"] = True
        extra_fields["is_superuser"] = True
        extra_fields.setdefault("role", self.model.Role.OWNER)

        return self.create_user(email, password, **extra_fields)
