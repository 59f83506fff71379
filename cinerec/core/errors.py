"""Pipeline error types."""

from cinerec.core.contracts import Stage


class StageError(Exception):
    """A per-user pipeline step failed.

    ``stage`` names the step for log attribution; the underlying error is chained
    as ``__cause__``.
    """

    def __init__(self, stage: Stage, user_id: str, message: str):
        super().__init__(f"{stage.value} stage failed for user {user_id}: {message}")
        self.stage = stage
        self.user_id = user_id


class NoCandidatesError(StageError):
    """No upcoming movies in the lookahead window, so there is nothing to recommend."""

    def __init__(self, user_id: str):
        super().__init__(Stage.CANDIDATES, user_id, "no upcoming movies available")
