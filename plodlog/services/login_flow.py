"""PIN login with forced credential rotation on first use."""
from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Optional

from ..dao.document_store import RemoteWriteError
from ..domain import User
from .app_state import AppState
from .validation import ValidationError, validate_new_pin, validate_pin, validate_signature

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid User ID or PIN."
PIN_CHANGE_CANCELLED = "PIN change was cancelled."
SIGNATURE_CANCELLED = "Signature capture was cancelled."


class LoginState(str, Enum):
    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    PIN_ROTATION_REQUIRED = "pin_rotation_required"
    SIGNATURE_CAPTURE_REQUIRED = "signature_capture_required"
    LOGGED_IN = "logged_in"


class AuthenticationError(Exception):
    """Unknown user id or wrong PIN."""


class LoginCancelled(Exception):
    """The operator abandoned PIN rotation or signature capture."""


class InvalidTransition(RuntimeError):
    """An action was requested in a state that does not accept it."""


class LoginFlow:
    def __init__(self, state: AppState) -> None:
        self._app = state
        self.state = LoginState.LOGGED_IN if state.current_user else LoginState.LOGGED_OUT
        self._pending_pin: Optional[str] = None

    @property
    def user(self) -> Optional[User]:
        return self._app.current_user

    def _expect(self, *states: LoginState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Not allowed while {self.state.value}")

    def submit_credentials(self, user_id: str, pin: str) -> LoginState:
        self._expect(LoginState.LOGGED_OUT)
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValidationError("Please enter your User ID")
        pin = validate_pin(pin)

        self.state = LoginState.AUTHENTICATING
        user = self._app.login(user_id, pin)
        if user is None:
            self.state = LoginState.LOGGED_OUT
            logger.info("Rejected login for %s", user_id)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if user.must_rotate_pin:
            self.state = LoginState.PIN_ROTATION_REQUIRED
            logger.info("User %s must set a new PIN", user_id)
        else:
            self.state = LoginState.LOGGED_IN
            logger.info("User %s logged in", user_id)
        return self.state

    def provide_pin(self, new_pin: str, confirm_pin: str) -> LoginState:
        self._expect(LoginState.PIN_ROTATION_REQUIRED)
        self._pending_pin = validate_new_pin(new_pin, confirm_pin)
        self.state = LoginState.SIGNATURE_CAPTURE_REQUIRED
        return self.state

    def provide_signature(self, signature: Optional[str]) -> LoginState:
        """Persist the new PIN and the signature together, then finish logging in."""
        self._expect(LoginState.SIGNATURE_CAPTURE_REQUIRED)
        if not (signature or "").strip():
            self.cancel()
        encoded = validate_signature(signature)

        user = self._app.current_user
        if user is None or self._pending_pin is None:
            self._rollback()
            raise AuthenticationError(INVALID_CREDENTIALS)
        updated = replace(user, pin=self._pending_pin, signature=encoded)
        try:
            self._app.update_user(updated)
        except RemoteWriteError:
            self._rollback()
            raise
        self._pending_pin = None
        self.state = LoginState.LOGGED_IN
        logger.info("User %s completed first login", user.id)
        return self.state

    def cancel(self) -> None:
        """Abandon rotation; always raises :class:`LoginCancelled`."""
        self._expect(LoginState.PIN_ROTATION_REQUIRED, LoginState.SIGNATURE_CAPTURE_REQUIRED)
        message = PIN_CHANGE_CANCELLED if self.state is LoginState.PIN_ROTATION_REQUIRED else SIGNATURE_CANCELLED
        self._rollback()
        raise LoginCancelled(message)

    def _rollback(self) -> None:
        self._pending_pin = None
        self._app.logout()
        self.state = LoginState.LOGGED_OUT

    def logout(self) -> None:
        self._rollback()


def change_pin(state: AppState, current_pin: str, new_pin: str, confirm_pin: str) -> None:
    user = state.current_user
    if user is None:
        raise AuthenticationError("Not logged in.")
    if str(current_pin or "").strip() != user.pin:
        raise ValidationError("Current PIN is incorrect.")
    pin = validate_new_pin(new_pin, confirm_pin)
    state.update_user(replace(user, pin=pin))
