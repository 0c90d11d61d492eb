import logging
import uuid
from enum import Enum
from typing import Callable, List

from repohub.domain.exceptions import DuplicateTokenError, EmptyTokenError, PersistenceError, SchemaError
from repohub.domain.models import PlatformToken, StoreState
from repohub.domain.schema import decode_tokens, encode_tokens
from repohub.infrastructure.storage import TOKENS_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class TokenRegistryEvent(str, Enum):
    FIRST_TOKEN_ADDED = "first_token_added"
    LAST_TOKEN_REMOVED = "last_token_removed"


TokenListener = Callable[[TokenRegistryEvent], None]


class TokenRegistry:
    """
    Holds the configured platform credentials and persists them on every change.
    Listeners are told when the registry goes from empty to non-empty and back.
    """

    def __init__(self, storage: KeyValueStore, state: StoreState):
        self.storage = storage
        self.state = state
        self._listeners: List[TokenListener] = []

    def subscribe(self, listener: TokenListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: TokenRegistryEvent) -> None:
        for listener in self._listeners:
            listener(event)

    def load(self) -> List[PlatformToken]:
        try:
            raw = self.storage.get(TOKENS_KEY)
            self.state.tokens = decode_tokens(raw) if raw is not None else []
        except (PersistenceError, SchemaError) as e:
            logger.error(f"Error loading tokens: {e}")
            self.state.tokens = []
            self.state.error = "Could not load token configuration."
        return list(self.state.tokens)

    def save(self, token: PlatformToken) -> PlatformToken:
        """
        Inserts the token or replaces the one with the same id.

        Raises:
            EmptyTokenError: the token string is blank.
            DuplicateTokenError: the same platform/token pair is stored under another id.
            PersistenceError: the updated list could not be written.
        """
        if not token.token.strip():
            raise EmptyTokenError("Token cannot be empty.")
        if not token.id:
            token = token.model_copy(update={"id": uuid.uuid4().hex})

        if any(t.platform == token.platform and t.token == token.token and t.id != token.id for t in self.state.tokens):
            raise DuplicateTokenError(f"A token for {token.platform.value} with the same value already exists.")

        was_empty = not self.state.tokens
        tokens = list(self.state.tokens)
        for index, existing in enumerate(tokens):
            if existing.id == token.id:
                tokens[index] = token
                break
        else:
            tokens.append(token)

        self._persist(tokens)
        self.state.tokens = tokens
        logger.info(f"Saved {token.platform.value} token {token.label}.")

        if was_empty:
            self._emit(TokenRegistryEvent.FIRST_TOKEN_ADDED)
        return token

    def delete(self, token_id: str) -> None:
        was_empty = not self.state.tokens
        tokens = [t for t in self.state.tokens if t.id != token_id]

        self._persist(tokens)
        self.state.tokens = tokens
        logger.info(f"Deleted token {token_id}.")

        if not was_empty and not tokens:
            self._emit(TokenRegistryEvent.LAST_TOKEN_REMOVED)

    def _persist(self, tokens: List[PlatformToken]) -> None:
        try:
            self.storage.set(TOKENS_KEY, encode_tokens(tokens))
        except PersistenceError:
            logger.exception("Error saving tokens.")
            raise
