"""
JWT authentication for store operators.
The dashboard keeps the access token in an HTTP-only cookie; API clients and
integrations send it as a Bearer header.
"""
from rest_framework import exceptions
from rest_framework.authentication import CSRFCheck
from rest_framework_simplejwt.authentication import JWTAuthentication

ACCESS_COOKIE_NAME = 'access_token'


class CookieJWTAuthentication(JWTAuthentication):
    """Read the access token from the cookie, falling back to the Authorization header."""

    def authenticate(self, request):
        raw_token = request.COOKIES.get(ACCESS_COOKIE_NAME)
        from_cookie = raw_token is not None

        if raw_token is None:
            header = self.get_header(request)
            if header is None:
                return None
            raw_token = self.get_raw_token(header)
            if raw_token is None:
                return None

        validated_token = self.get_validated_token(raw_token)
        user = self.get_user(validated_token)

        # Cookies ride along on cross-site requests; header tokens do not
        if from_cookie:
            self.enforce_csrf(request)

        return user, validated_token

    def enforce_csrf(self, request):
        check = CSRFCheck(lambda req: None)
        check.process_request(request)
        reason = check.process_view(request, None, (), {})
        if reason:
            raise exceptions.PermissionDenied(f'CSRF Failed: {reason}')
