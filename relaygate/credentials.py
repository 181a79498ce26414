"""In-memory per-agent credential cache."""

import threading

from relaygate.types.credentials import Credential


class CredentialStore:
    """
    Holds the last credential issued for each agent.

    Credentials are derivable by re-issuance, so the store lives in process
    memory only. A newer credential overwrites the previous one; nothing is
    ever deleted except through ``discard``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._credentials: dict[str, Credential] = {}

    def get(self, agent_id: str) -> Credential | None:
        with self._lock:
            return self._credentials.get(agent_id)

    def put(self, agent_id: str, credential: Credential) -> None:
        with self._lock:
            self._credentials[agent_id] = credential

    def discard(self, agent_id: str) -> None:
        with self._lock:
            self._credentials.pop(agent_id, None)

    def __contains__(self, agent_id: object) -> bool:
        with self._lock:
            return agent_id in self._credentials

    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)
