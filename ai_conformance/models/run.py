"""Models describing one conformance run."""

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

LOG_FILE_NAME = "test_result.log"


class TestRun(BaseModel):
    """Static description of one execution of one requirement's probe."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Human-readable test name")
    description: str = Field(..., description="What the probe validates")
    namespace: str = Field(..., description="Primary namespace of the probe")
    run_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory holding the log sink and REQUIREMENT.md",
    )
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def log_file(self) -> Path:
        """Location of the run's log sink."""
        return self.run_dir / LOG_FILE_NAME

    @property
    def requirement_file(self) -> Path:
        """Location of the optional requirement text shown in the log header."""
        return self.run_dir / "REQUIREMENT.md"
