# src/replaylink/schemas/replay.py

"""Pydantic schemas for replay payloads and batch imports."""

from pydantic import BaseModel, ConfigDict, Field


class ReplayPayload(BaseModel):
    """A replay document as served by the replay source.

    ``id`` and ``log`` are optional here so that ingestion, not request
    parsing, decides how a payload without them fails.

    Example:
        {"id": "gen9vgc2024regg-2100000001", "formatid": "gen9vgc2024regg",
         "format": "[Gen 9] VGC 2024 Reg G", "log": "|j|...", "uploadtime": 1718000000}
    """

    id: str | None = None
    log: str | None = None
    format: str | None = None
    formatid: str | None = None
    players: list[str] = Field(default_factory=list)
    uploadtime: int | None = None
    views: int | None = None
    rating: int | None = None
    private: bool = False
    password: str | None = None

    # The source adds fields over time; keep them for raw_json
    model_config = ConfigDict(extra="allow")


class ReplayIngestRequest(BaseModel):
    """Properties to receive when ingesting an already-fetched replay."""

    payload: ReplayPayload
    replay_url: str | None = None
    replay_json_url: str | None = None
    autolink: bool = Field(default=True, description="Run auto-link after ingest")


class ReplayImportRequest(BaseModel):
    """A batch of replay URLs or ids, given as a list, pasted text, or both."""

    replays: list[str] = Field(default_factory=list)
    text: str | None = Field(default=None, description="One reference per line")


class ReplayImportRow(BaseModel):
    """Per-reference outcome of a batch import."""

    input: str
    ok: bool
    replay_id: str | None = None
    battle_id: int | None = None
    error: str | None = None


class ReplayImportResult(BaseModel):
    ok_count: int
    fail_count: int
    set_id: int | None = None
    rows: list[ReplayImportRow]
