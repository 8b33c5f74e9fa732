"""Service for minting stable MindFlow ids."""

from ulid import ULID

from mindflow.domain.models import RecordKind

ID_PREFIXES = {
    RecordKind.INTERACTION: "int",
    RecordKind.VOCABULARY: "voc",
}


def generate_record_id(kind: RecordKind) -> str:
    """Generate a record id using ULID, prefixed by record kind."""
    return f"{ID_PREFIXES[kind]}_{ULID()}"


def generate_session_id() -> str:
    return f"rev_{ULID()}"


def generate_run_id() -> str:
    """Id tagging one CLI/server run in the log files."""
    return str(ULID())
