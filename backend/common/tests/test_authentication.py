"""
Tests for cookie and header JWT authentication.
"""
from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken
from apps.accounts.models import Store

User = get_user_model()


class CookieJWTAuthenticationTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.store = Store.objects.create(name='Tienda Auth')
        self.user = User.objects.create_user(
            email='logistics@example.com',
            password='TestPass123!',
            role=User.Role.LOGISTICS,
            store=self.store
        )
        self.token = str(AccessToken.for_user(self.user))

    def test_bearer_header(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.token}')

        response = self.client.get('/api/orders/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cookie(self):
        self.client.cookies['access_token'] = self.token

        response = self.client.get('/api/orders/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_garbage_token_rejected(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-jwt')

        response = self.client.get('/api/orders/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_anonymous_rejected(self):
        response = self.client.get('/api/orders/')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
