"""In-memory stores with extra inspection hooks for tests."""

from typing import Dict, List

from genstudio.jobs.models import MediaAsset
from genstudio.jobs.store import InMemoryJobStore


class InspectableJobStore(InMemoryJobStore):
    """In-memory store that also exposes what it currently holds."""

    def count(self) -> Dict[str, int]:
        return {"assets": len(self._assets), "jobs": len(self._jobs)}

    def list_assets(self) -> List[MediaAsset]:
        return [a.model_copy(deep=True) for a in self._assets.values()]
