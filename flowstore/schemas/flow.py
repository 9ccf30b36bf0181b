from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Graph payloads are checked by the reconciler, not here: a malformed body must
# come back as a rolled-back operation rather than a schema error.


class FlowCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Any = None
    description: Any = None
    columns: Any = Field(default_factory=list)
    nodes: Any = Field(default_factory=list)
    edges: Any = Field(default_factory=list)
    items: Any = Field(default_factory=list)
    deadlines: Any = None
    plannerTeamId: Any = None
    plannerChannelId: Any = None
    plannerPlanId: Any = None
    plannerBucketId: Any = None


class FlowUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Any = None
    description: Any = None
    columns: Any = None
    nodes: Any = None
    edges: Any = None
    items: Any = None
    deadlines: Any = None
    plannerTeamId: Any = None
    plannerChannelId: Any = None
    plannerPlanId: Any = None
    plannerBucketId: Any = None
