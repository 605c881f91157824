from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class GenerationRecord:
    """In-memory representation of a row in the GENERATION table.

    Attributes:
        id: Primary key (None for new records).
        session_id: Session that produced the model.
        mesh_url: URL of the textured mesh returned by the reconstruction job.
        total_time: Seconds from start to final result, if measured.
        step_times: Step name -> final elapsed time string.
        view_labels: Labels of the synthesized views, in front/back/left order.
        thumbnail: Optional PNG thumbnail of the front view.
        created_at: Unix timestamp (seconds) when the row was inserted.
    """

    id: Optional[int]
    session_id: str
    mesh_url: str
    total_time: Optional[float] = None
    step_times: Optional[Dict[str, str]] = None
    view_labels: Optional[List[str]] = None
    thumbnail: Optional[bytes] = None
    created_at: Optional[int] = None

    def as_dict(self) -> Dict[str, object]:
        """Return the JSON-friendly fields (thumbnail bytes excluded)."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "mesh_url": self.mesh_url,
            "total_time": self.total_time,
            "step_times": self.step_times or {},
            "view_labels": self.view_labels or [],
            "has_thumbnail": bool(self.thumbnail),
            "created_at": self.created_at,
        }
