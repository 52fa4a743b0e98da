from __future__ import annotations

import logging
from pathlib import Path

from config import SESSION_STORE_DIR
from schemas.session import Session, load_session, save_session
from storage.memory import InMemoryTrialStore

logger = logging.getLogger(__name__)


class JsonSessionStore(InMemoryTrialStore):
    """Trial store that writes one JSON document per session on every change.

    Existing ``session_*.json`` files in ``directory`` are loaded at start-up.
    """

    def __init__(self, directory: Path = SESSION_STORE_DIR):
        super().__init__()
        self.directory = Path(directory)
        self._paths: dict[str, Path] = {}
        if self.directory.exists():
            for path in sorted(self.directory.glob("session_*.json")):
                session = load_session(path)
                self.sessions[session.session_id] = session
                self._paths[session.session_id] = path
                for trial in session.trials:
                    self._trial_index[trial.trial_id] = session.session_id
            if self.sessions:
                logger.info("Loaded %d sessions from %s", len(self.sessions), self.directory)

    def path_for(self, session_id: str) -> Path | None:
        return self._paths.get(session_id)

    def _on_change(self, session: Session) -> None:
        self._paths[session.session_id] = save_session(session, self.directory)

    def _on_delete(self, session: Session) -> None:
        path = self._paths.pop(session.session_id, None)
        if path is not None and path.exists():
            path.unlink()
