from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from omnisight.core.dtypes import Role, ROLE_ORDER
from omnisight.core.dtypes.media import FrameID
from .orchestrator import InstanceRecord, RoleResult


@dataclass
class FrameResult:
    """Merged output of every enabled role for one frame."""

    frame_id: FrameID
    instances: List[InstanceRecord] = field(default_factory=list)
    failed_roles: List[Role] = field(default_factory=list)
    performance: Dict[str, float] = field(default_factory=dict)  # ms per role and "total"

    def by_role(self, role: Role) -> List[InstanceRecord]:
        return [instance for instance in self.instances if instance.role is role]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame_id": self.frame_id,
            "instances": [instance.to_dict() for instance in self.instances],
            "failed_roles": [role.value for role in self.failed_roles],
            "performance": dict(self.performance),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def aggregate(
    frame_id: FrameID,
    role_results: Iterable[RoleResult],
    total_time: Optional[float] = None,
) -> FrameResult:
    """Orders instances by declared role order, keeping each role's own order.

    The order in which roles finished has no influence on the result.
    """
    ordered = sorted(role_results, key=lambda result: ROLE_ORDER.index(result.role))
    frame = FrameResult(frame_id=frame_id)
    for result in ordered:
        frame.instances.extend(result.instances)
        frame.performance[result.role.value] = result.processing_time
        if result.failed:
            frame.failed_roles.append(result.role)
    if total_time is not None:
        frame.performance["total"] = total_time
    return frame
