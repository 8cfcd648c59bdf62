"""GitHub webhook ingress for prwatch.

This module provides the WebhookIngress, which authenticates inbound
GitHub deliveries, classifies and filters them, and dispatches pull
request events to the review orchestrator.
"""

import json
import time
from collections import OrderedDict
from typing import Any

import structlog

from core.events.bus import NotificationBus
from core.events.models import (
    Channel,
    PullRequestEventNotice,
    ReviewCompleted,
    WebhookDelivery,
    WebhookReceived,
)
from core.review.models import ProcessPRParams, ProcessPRResult
from core.review.orchestrator import ReviewOrchestrator

from .models import (
    PR_RELATED_EVENTS,
    REVIEW_TRIGGER_ACTIONS,
    WebhookConfig,
    WebhookEventType,
    WebhookResult,
)
from .signature import verify_signature

logger = structlog.get_logger(__name__)


class WebhookIngress:
    """Authenticates and dispatches GitHub webhook deliveries.

    Publishes ``webhook_received`` for every accepted delivery, ``pr_event``
    for pull request related kinds and ``review_completed`` after an
    automatic review.

    Attributes:
        config: Ingress configuration.
        bus: Notification bus the ingress publishes on.
    """

    def __init__(
        self,
        config: WebhookConfig,
        orchestrator: ReviewOrchestrator | None = None,
        bus: NotificationBus | None = None,
    ) -> None:
        """Initialize the ingress.

        Args:
            config: Ingress configuration.
            orchestrator: Runs reviews when ``auto_process`` is enabled.
            bus: Bus to publish on. A private bus is created if not provided.
        """
        self.config = config
        self.bus = bus or NotificationBus()
        self._orchestrator = orchestrator
        # Delivery id -> sighting count, oldest first
        self._deliveries: OrderedDict[str, int] = OrderedDict()
        self._logger = logger.bind(component="webhook_ingress")

    @property
    def can_review(self) -> bool:
        """Whether an orchestrator is attached for automatic review."""
        return self._orchestrator is not None

    async def handle_request(
        self,
        raw_payload: str | bytes,
        signature_header: str | None,
        delivery_id: str,
        event_type_header: str | None,
    ) -> WebhookResult:
        """Handle one webhook request.

        Args:
            raw_payload: Request body exactly as received.
            signature_header: ``X-Hub-Signature-256`` header value.
            delivery_id: ``X-GitHub-Delivery`` header value.
            event_type_header: ``X-GitHub-Event`` header value.

        Returns:
            WebhookResult describing the outcome.
        """
        start_time = time.perf_counter()
        event_name = event_type_header or ""
        log = self._logger.bind(delivery_id=delivery_id, event_type=event_name)

        def fail(error: str, **fields: Any) -> WebhookResult:
            log.warning("webhook_rejected", error=error)
            return WebhookResult(
                success=False,
                event_id=delivery_id,
                event_type=event_name,
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
                error=error,
                **fields,
            )

        verification = verify_signature(raw_payload, signature_header, self.config.secret)
        if not verification.valid:
            return fail(f"Signature verification failed: {verification.error}")

        event_type = WebhookEventType.classify(event_type_header)
        if event_type is None:
            return fail(f"Unknown event type: {event_name}")

        if event_type not in self.config.allowed_events:
            return fail(f"Event type '{event_name}' is not allowed")

        try:
            payload = json.loads(raw_payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return fail(f"Invalid payload: {e}")
        if not isinstance(payload, dict):
            return fail("Invalid payload: expected a JSON object")
        shape_error = payload_shape_error(payload)
        if shape_error:
            return fail(f"Invalid payload: {shape_error}")

        action = payload.get("action")
        repository = (payload.get("repository") or {}).get("full_name")

        delivery = self._record_delivery(event_type, delivery_id, payload)
        self.bus.publish(Channel.WEBHOOK_RECEIVED, WebhookReceived(delivery=delivery))

        log = log.bind(action=action, repository=repository)
        log.info("webhook_received", is_retry=delivery.is_retry, attempt=delivery.attempt)

        allowed_repositories = self.config.allowed_repositories
        if allowed_repositories is not None and repository and repository not in allowed_repositories:
            return fail(
                f"Repository '{repository}' is not allowed",
                action=action,
                repository=repository,
            )

        review_result = await self._dispatch(event_type, delivery, payload)

        return WebhookResult(
            success=True,
            event_id=delivery_id,
            event_type=event_type.value,
            action=action,
            repository=repository,
            processing_time_ms=(time.perf_counter() - start_time) * 1000,
            review_result=review_result,
        )

    async def _dispatch(
        self,
        event_type: WebhookEventType,
        delivery: WebhookDelivery,
        payload: dict[str, Any],
    ) -> ProcessPRResult | None:
        """Route an accepted delivery by kind.

        Returns:
            The orchestrator result when a review ran, else None.
        """
        action = payload.get("action")

        match event_type:
            case WebhookEventType.PING:
                self._logger.info("webhook_ping", zen=payload.get("zen"), hook_id=payload.get("hook_id"))
                return None

            case WebhookEventType.PULL_REQUEST if action in REVIEW_TRIGGER_ACTIONS:
                self._publish_pr_event(delivery, payload, triggers_review=True)
                if not self.config.auto_process or self._orchestrator is None:
                    return None
                return await self._run_review(self._orchestrator, payload)

            case _ if event_type in PR_RELATED_EVENTS:
                self._publish_pr_event(delivery, payload, triggers_review=False)
                return None

            case _:
                self._logger.debug("webhook_acknowledged", event_type=event_type.value, action=action)
                return None

    def _publish_pr_event(
        self,
        delivery: WebhookDelivery,
        payload: dict[str, Any],
        triggers_review: bool,
    ) -> None:
        pull_request = payload.get("pull_request") or {}
        self.bus.publish(
            Channel.PR_EVENT,
            PullRequestEventNotice(
                delivery_id=delivery.id,
                event_type=delivery.type,
                action=payload.get("action"),
                repository=(payload.get("repository") or {}).get("full_name"),
                pull_number=pull_request.get("number") or payload.get("number"),
                triggers_review=triggers_review,
            ),
        )

    async def _run_review(
        self,
        orchestrator: ReviewOrchestrator,
        payload: dict[str, Any],
    ) -> ProcessPRResult | None:
        """Run the orchestrator for a review-triggering pull request event."""
        repository = payload.get("repository") or {}
        pull_request = payload.get("pull_request") or {}
        owner = (repository.get("owner") or {}).get("login")
        name = repository.get("name")
        number = pull_request.get("number") or payload.get("number")

        if not owner or not name or not number:
            self._logger.warning(
                "pull_request_payload_incomplete",
                repository=repository.get("full_name"),
                pull_number=number,
            )
            return None

        user = pull_request.get("user") or {}
        params = ProcessPRParams(
            owner=owner,
            repo=name,
            pull_number=number,
            pr_title=pull_request.get("title"),
            pr_description=pull_request.get("body"),
            author_id=str(user["id"]) if user.get("id") is not None else None,
            author_name=user.get("login"),
        )

        result = await orchestrator.process_pr(params)
        self.bus.publish(
            Channel.REVIEW_COMPLETED,
            ReviewCompleted(owner=owner, repo=name, pull_number=number, result=result),
        )
        return result

    def _record_delivery(
        self,
        event_type: WebhookEventType,
        delivery_id: str,
        payload: dict[str, Any],
    ) -> WebhookDelivery:
        """Count sightings of a delivery id in a bounded history."""
        attempt = self._deliveries.pop(delivery_id, 0) + 1
        if self.config.delivery_history_size > 0:
            self._deliveries[delivery_id] = attempt
            while len(self._deliveries) > self.config.delivery_history_size:
                self._deliveries.popitem(last=False)

        return WebhookDelivery(
            type=event_type.value,
            id=delivery_id,
            payload=payload,
            is_retry=attempt > 1,
            attempt=attempt,
        )


def _wrong_type(value: Any, kind: type) -> bool:
    return value is not None and not isinstance(value, kind)


def _bad_number(value: Any) -> bool:
    if value is None:
        return False
    return not isinstance(value, int) or isinstance(value, bool) or value < 1


def payload_shape_error(payload: dict[str, Any]) -> str | None:
    """Check the fields the ingress reads from a delivery payload.

    Absent or null fields are fine. Present fields must have the type
    GitHub sends.

    Returns:
        A description of the first malformed field, or None.
    """
    if _wrong_type(payload.get("action"), str):
        return "'action' must be a string"
    if _bad_number(payload.get("number")):
        return "'number' must be a positive integer"

    repository = payload.get("repository")
    if _wrong_type(repository, dict):
        return "'repository' must be an object"
    if repository:
        for key in ("full_name", "name"):
            if _wrong_type(repository.get(key), str):
                return f"'repository.{key}' must be a string"
        owner = repository.get("owner")
        if _wrong_type(owner, dict):
            return "'repository.owner' must be an object"
        if owner and _wrong_type(owner.get("login"), str):
            return "'repository.owner.login' must be a string"

    pull_request = payload.get("pull_request")
    if _wrong_type(pull_request, dict):
        return "'pull_request' must be an object"
    if not pull_request:
        return None
    if _bad_number(pull_request.get("number")):
        return "'pull_request.number' must be a positive integer"
    for key in ("title", "body"):
        if _wrong_type(pull_request.get(key), str):
            return f"'pull_request.{key}' must be a string"
    user = pull_request.get("user")
    if _wrong_type(user, dict):
        return "'pull_request.user' must be an object"
    if user and _wrong_type(user.get("login"), str):
        return "'pull_request.user.login' must be a string"
    return None
