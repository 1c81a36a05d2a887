"""
Submission coordinator.

Drives a FormSession through validation and the transport call:

    IDLE -> VALIDATING -> INVALID -> IDLE
    IDLE -> VALIDATING -> SUBMITTING -> SUBMITTED
                                    -> FAILED -> IDLE

While a submission is in flight the session's ``is_submitting`` flag is
set and further submits join the pending call instead of sending a second
request. The session's values are never touched by a failed submission.
"""

import asyncio
import logging
from typing import Any, Callable, Protocol

from pydantic import BaseModel

from reservations.core.errors import ConfigurationError, TransportError, ValidationFailure
from reservations.core.form_state import FormSession, SubmissionState
from reservations.core.payload import SubmissionPayload, build_payload
from reservations.core.schema import Navigation

logger = logging.getLogger(__name__)

__all__ = [
    "SubmissionCoordinator",
    "SubmissionOutcome",
    "SubmissionState",
    "Transport",
]


class Transport(Protocol):
    """Anything able to deliver a payload to the backend."""

    async def submit_form(self, payload: SubmissionPayload) -> dict[str, Any]: ...


class SubmissionOutcome(BaseModel):
    """Result of a successful submission."""

    payload: SubmissionPayload
    response: dict[str, Any]
    navigation: Navigation | None = None


class SubmissionCoordinator:
    """Validates and submits form sessions through a transport.

    Args:
        transport: The transport collaborator.
        on_navigate: Optional callback invoked with the form's Navigation
            after a successful submission. Errors it raises are logged and do
            not fail the submission.
    """

    def __init__(
        self,
        transport: Transport,
        on_navigate: Callable[[Navigation], Any] | None = None,
    ):
        self.transport = transport
        self.on_navigate = on_navigate

    async def submit(self, session: FormSession) -> SubmissionOutcome:
        """Validate the session and, if valid, submit it.

        Returns:
            The SubmissionOutcome of this (or the already pending) submission.

        Raises:
            ValidationFailure: If the form is invalid. The transport is not called.
            ConfigurationError: If no endpoint serves the form's operation.
            TransportError: If the transport call fails.
        """
        if session.is_submitting and session.pending_submission is not None:
            logger.info("Submission of '%s' already in flight, joining it", session.form_kind)
            return await asyncio.shield(session.pending_submission)

        session.transition(SubmissionState.VALIDATING)
        errors = session.validate()
        if errors:
            session.transition(SubmissionState.INVALID)
            logger.info(
                "Submission of '%s' blocked by %d invalid field(s)",
                session.form_kind, len(errors),
            )
            session.transition(SubmissionState.IDLE)
            raise ValidationFailure(errors)

        payload = build_payload(session.schema, session.values, session.derived)
        session.transition(SubmissionState.SUBMITTING)
        session.is_submitting = True
        session.last_error = None

        task = asyncio.ensure_future(self._send(session, payload))
        session.pending_submission = task
        return await asyncio.shield(task)

    async def _send(self, session: FormSession, payload: SubmissionPayload) -> SubmissionOutcome:
        logger.info(
            "Submitting '%s' to operation '%s' (%d field(s), %d file(s))",
            payload.form_kind, payload.operation, len(payload.fields), len(payload.files),
        )
        try:
            response = await self.transport.submit_form(payload)
        except ConfigurationError:
            session.transition(SubmissionState.IDLE)
            raise
        except TransportError as e:
            self._fail(session, e)
            raise
        except Exception as e:
            error = TransportError(str(e) or e.__class__.__name__)
            self._fail(session, error)
            raise error from e
        finally:
            session.is_submitting = False
            session.pending_submission = None

        session.transition(SubmissionState.SUBMITTED)
        outcome = SubmissionOutcome(
            payload=payload,
            response=response or {},
            navigation=session.schema.on_success,
        )
        logger.info("Submission of '%s' succeeded", payload.form_kind)

        if self.on_navigate is not None and outcome.navigation is not None:
            try:
                self.on_navigate(outcome.navigation)
            except Exception:
                logger.exception(
                    "Navigation callback failed after submitting '%s'", payload.form_kind
                )
        return outcome

    @staticmethod
    def _fail(session: FormSession, error: TransportError) -> None:
        session.transition(SubmissionState.FAILED)
        session.last_error = str(error)
        logger.error("Submission of '%s' failed: %s", session.form_kind, error)
        session.transition(SubmissionState.IDLE)
