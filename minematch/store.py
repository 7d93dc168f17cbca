"""Registries shared between the HTTP layer and match workflows.

Match state itself lives in each match's workflow; the store only remembers
which match ids and agent ids exist so they can be listed and looked up.
"""
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class AgentRecord:
    id: str
    wallet: str


class MatchStore:
    """In-memory index of matches and registered agents."""

    def __init__(self):
        self._lock = threading.Lock()
        self._matches: List[str] = []
        self._agents: Dict[str, AgentRecord] = {}

    def add_match(self, match_id: str) -> None:
        with self._lock:
            if match_id not in self._matches:
                self._matches.append(match_id)

    def remove_match(self, match_id: str) -> None:
        with self._lock:
            if match_id in self._matches:
                self._matches.remove(match_id)

    def match_ids(self) -> List[str]:
        with self._lock:
            return list(self._matches)

    def register_agent(self, agent_id: str, wallet: str) -> AgentRecord:
        record = AgentRecord(id=agent_id, wallet=wallet)
        with self._lock:
            self._agents[agent_id] = record
        return record

    def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        with self._lock:
            return self._agents.get(agent_id)
