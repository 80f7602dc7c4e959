"""
Apply a retention plan to the catalog.

Retained images get the verification property removed, purged images are
deleted. Calls are issued one at a time in plan order. By default the first
failure stops the run; nothing already applied is rolled back.
"""

from typing import Callable, Dict, List, Optional

from image_retention.error_utils import (
    RunCancelledError,
    create_aggregate_mutation_error,
    create_mutation_error,
)
from image_retention.logging_utils import get_logger
from image_retention.models import (
    Classification,
    EventKind,
    ExecutionReport,
    ImageRecord,
    ItemOutcome,
    RetentionPlan,
    StatusEvent,
)

DEFAULT_VERIFICATION_PROPERTY = "signature_verified"

OPERATIONS = {
    Classification.RETAIN: ("update metadata of", EventKind.UPDATING_METADATA),
    Classification.PURGE: ("delete", EventKind.DELETING),
}


class RetentionExecutor:
    """Issue the metadata patches and deletes of a RetentionPlan."""

    def __init__(
        self,
        client,
        on_event: Optional[Callable[[StatusEvent], None]] = None,
        verification_property: str = DEFAULT_VERIFICATION_PROPERTY,
        continue_on_error: bool = False,
        dry_run: bool = False,
        cancel_event=None,
    ):
        """Initialize RetentionExecutor

        Args:
            client: Catalog client exposing remove_property(id, name) and delete_image(id)
            on_event: Callback receiving a StatusEvent before each mutation
            verification_property: Image property cleared on retained images
            continue_on_error: Attempt every image and raise one aggregated error at the end
            dry_run: Emit events and record outcomes without calling the catalog
            cancel_event: Optional threading.Event checked before each call
        """
        self.client = client
        self.on_event = on_event
        self.verification_property = verification_property
        self.continue_on_error = continue_on_error
        self.dry_run = dry_run
        self.cancel_event = cancel_event
        self.report: Optional[ExecutionReport] = None
        self.logger = get_logger(self.__class__.__name__)

    def _emit(self, event: StatusEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)

    def _apply(self, image: ImageRecord, action: Classification) -> None:
        if action is Classification.RETAIN:
            self.client.remove_property(image.id, self.verification_property)
        else:
            self.client.delete_image(image.id)

    def execute(self, plan: RetentionPlan) -> ExecutionReport:
        """Apply the plan.

        Returns:
            ExecutionReport with one outcome per attempted image

        Raises:
            MutationError: on the first failure, or after all images in continue-on-error mode
            RunCancelledError: if cancel_event is set between two calls
        """
        report = ExecutionReport()
        self.report = report
        failures: List[Dict[str, str]] = []

        for image, action in plan.items():
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise RunCancelledError("execution", report)

            operation, kind = OPERATIONS[action]
            self._emit(StatusEvent(kind, image))

            if self.dry_run:
                self.logger.info(f"DRY RUN: would {operation} image {image.label}")
                report.record(ItemOutcome(image, action, success=True, dry_run=True))
                continue

            try:
                self._apply(image, action)
            except Exception as e:
                report.record(ItemOutcome(image, action, success=False, error=str(e)))
                if not self.continue_on_error:
                    self.logger.error(f"Failed to {operation} image {image.label}: {e}")
                    raise create_mutation_error(operation, image, e, report) from e
                self.logger.warning(f"Failed to {operation} image {image.label}, continuing: {e}")
                failures.append({"operation": operation, "image_id": image.id,
                                 "image_name": image.name, "error": str(e)})
                continue

            report.record(ItemOutcome(image, action, success=True))

        if failures:
            raise create_aggregate_mutation_error(failures, report)

        self.logger.info(
            f"Retention applied: {report.patched} patched, {report.deleted} deleted, {report.failed} failed"
        )
        return report
