"""
Post-build retention step.

Runs listing, classification and execution in sequence against one catalog
client and hands the build artifact back untouched.
"""

from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from image_retention.classifier import classify
from image_retention.executor import RetentionExecutor
from image_retention.glance_client import create_glance_client
from image_retention.lister import list_images
from image_retention.logging_utils import get_logger
from image_retention.models import ExecutionReport, RetentionFilter, RetentionPlan, StatusEvent


class RunState(Enum):
    INIT = "init"
    LISTING = "listing"
    CLASSIFYING = "classifying"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


class PostProcessor:
    """Keep the newest images of a family after a build and delete the others."""

    def __init__(
        self,
        settings,
        client=None,
        client_factory: Optional[Callable[[Any], Any]] = None,
        on_event: Optional[Callable[[StatusEvent], None]] = None,
        cancel_event=None,
    ):
        """Initialize PostProcessor

        Args:
            settings: RetentionSettings for the run
            client: Ready catalog client; created with client_factory on first run when None
            client_factory: Builds a client from settings (default: create_glance_client)
            on_event: Receives status events in execution order
            cancel_event: Optional threading.Event to stop the run between catalog calls
        """
        self.settings = settings
        self.client = client
        self.client_factory = client_factory
        self.on_event = on_event
        self.cancel_event = cancel_event
        self.logger = get_logger(self.__class__.__name__)

        self.state = RunState.INIT
        self.state_history: List[RunState] = [RunState.INIT]
        self.last_plan: Optional[RetentionPlan] = None
        self.last_report: Optional[ExecutionReport] = None

    def _transition(self, state: RunState) -> None:
        self.logger.debug(f"Retention run state {self.state.value} -> {state.value}")
        self.state = state
        self.state_history.append(state)

    def _ensure_client(self):
        if self.client is None:
            self.logger.info("Creating OpenStack image service connection")
            factory = self.client_factory or create_glance_client
            self.client = factory(self.settings)
        return self.client

    def post_process(self, artifact: Any) -> Tuple[Any, bool, bool]:
        """Apply the retention policy and pass the artifact through.

        Returns:
            (artifact, keep_artifact, force_override), always (artifact, True, False)

        Raises:
            AuthenticationError, CatalogError, MutationError, RunCancelledError
        """
        self.logger.info("Running OpenStack image retention post-processor")
        self.state = RunState.INIT
        self.state_history = [RunState.INIT]
        self.last_plan = None
        self.last_report = None
        executor = None

        try:
            client = self._ensure_client()
            retention_filter = RetentionFilter(self.settings.identifier)

            self._transition(RunState.LISTING)
            images = list_images(client, retention_filter, self.cancel_event)

            self._transition(RunState.CLASSIFYING)
            plan = classify(images, self.settings.keep_releases)
            self.last_plan = plan
            self.logger.info(
                f"Retaining {len(plan.retain)} and purging {len(plan.purge)} of {len(images)} "
                f"image(s) named '{retention_filter.name}'"
            )

            self._transition(RunState.EXECUTING)
            executor = RetentionExecutor(
                client,
                on_event=self.on_event,
                verification_property=self.settings.verification_property,
                continue_on_error=self.settings.continue_on_error,
                dry_run=self.settings.dry_run,
                cancel_event=self.cancel_event,
            )
            self.last_report = executor.execute(plan)
        except BaseException as e:
            report = getattr(e, "report", None)
            if report is None and executor is not None:
                report = executor.report
            if report is not None:
                self.last_report = report
            self._transition(RunState.FAILED)
            if isinstance(e, Exception):
                self.logger.error(f"Retention run failed: {e}")
            else:
                self.logger.error(f"Retention run interrupted ({type(e).__name__})")
            raise

        self._transition(RunState.DONE)
        return artifact, True, False
