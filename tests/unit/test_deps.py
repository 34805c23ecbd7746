"""Unit tests for FastAPI dependency injection functions."""

import time
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
from fastapi import HTTPException

from src.api.deps import get_current_user, get_payment_gateway, get_payment_service, require_admin
from src.api.middleware.error_handler import AuthorizationError
from src.schemas.auth import TokenPayload, UserContext
from src.services.payment_service import PaymentService

USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def make_payload(**overrides: object) -> TokenPayload:
    now = int(time.time())
    data = {
        "sub": USER_ID,
        "email": "test@example.com",
        "role": "authenticated",
        "exp": now + 3600,
        "iat": now,
    }
    data.update(overrides)
    return TokenPayload(**data)


class TestGetCurrentUser:
    """Tests for get_current_user dependency."""

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_extracts_user_context_correctly(self, mock_decode: MagicMock) -> None:
        """Test get_current_user extracts UserContext from valid token."""
        mock_decode.return_value = make_payload()

        user = await get_current_user("Bearer valid-token")

        mock_decode.assert_called_once_with("valid-token")
        assert isinstance(user, UserContext)
        assert str(user.user_id) == USER_ID
        assert user.email == "test@example.com"
        assert user.role == "authenticated"

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_uses_app_metadata_role(self, mock_decode: MagicMock) -> None:
        mock_decode.return_value = make_payload(app_metadata={"role": "admin"})

        user = await get_current_user("Bearer admin-token")

        assert user.role == "admin"
        assert user.is_admin is True

    @pytest.mark.asyncio
    async def test_raises_401_for_missing_header(self) -> None:
        """Test get_current_user raises 401 when Authorization header is missing."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("")

        assert exc_info.value.status_code == 401
        assert "Authorization header required" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_invalid_header_format(self) -> None:
        """Test get_current_user raises 401 for invalid header format."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("invalid-token")

        assert exc_info.value.status_code == 401
        assert "Invalid authorization header format" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_wrong_scheme(self) -> None:
        """Test get_current_user raises 401 for non-Bearer scheme."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Basic some-credentials")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_expired_token(self, mock_decode: MagicMock) -> None:
        """Test get_current_user raises 401 for expired token."""
        from src.api.middleware.auth import AuthError, AuthErrorCode

        mock_decode.side_effect = AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Bearer expired-token")

        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail.lower()

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_invalid_token(self, mock_decode: MagicMock) -> None:
        from src.api.middleware.auth import AuthError, AuthErrorCode

        mock_decode.side_effect = AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Bearer forged-token")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid token signature"


class TestRequireAdmin:
    """Tests for require_admin dependency."""

    @pytest.mark.asyncio
    async def test_allows_admin(self) -> None:
        admin = UserContext(user_id=UUID(USER_ID), role="admin")
        assert await require_admin(admin) is admin

    @pytest.mark.asyncio
    async def test_rejects_regular_user(self) -> None:
        user = UserContext(user_id=UUID(USER_ID), role="authenticated")

        with pytest.raises(AuthorizationError) as exc_info:
            await require_admin(user)

        assert exc_info.value.status_code == 403


class TestPaymentDependencies:
    """Tests for payment service wiring."""

    def test_gateway_comes_from_app_state(self) -> None:
        request = MagicMock()
        gateway = MagicMock()
        request.app.state.payment_gateway = gateway

        assert get_payment_gateway(request) is gateway

    def test_payment_service_uses_gateway(self) -> None:
        gateway = MagicMock()
        repository = MagicMock()

        with patch("src.services.payment_service.OrderRepository", return_value=repository):
            service = get_payment_service(gateway)

        assert isinstance(service, PaymentService)
        assert service.gateway is gateway
        assert service.repository is repository
