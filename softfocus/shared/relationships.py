"""Therapy-context lookup of patient -> psychologist assignments.

Both the crisis engine and the notification service need to know who a
patient's psychologist is; neither owns that relationship.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional


class RelationshipDirectory(ABC):
    """Read access to active therapy relationships."""

    @abstractmethod
    async def get_psychologist_for(self, patient_id: str) -> Optional[str]:
        """Psychologist currently assigned to a patient, or None."""
        pass


class InMemoryRelationshipDirectory(RelationshipDirectory):
    """Static patient -> psychologist map for tests and local runs."""

    def __init__(self, assignments: Optional[Dict[str, str]] = None):
        self._assignments: Dict[str, str] = dict(assignments or {})

    def assign(self, patient_id: str, psychologist_id: str) -> None:
        self._assignments[patient_id] = psychologist_id

    def unassign(self, patient_id: str) -> None:
        self._assignments.pop(patient_id, None)

    async def get_psychologist_for(self, patient_id: str) -> Optional[str]:
        return self._assignments.get(patient_id)
