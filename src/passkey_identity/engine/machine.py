"""AuthenticationEngine — orchestrates passkey login and delegated sessions.

Login sequence
--------------
1. Ask the remote authority for a challenge (identified or discoverable).
2. Hand the challenge payload to the authenticator for a signed assertion.
3. Generate a fresh session keypair and submit it with the assertion.
4. Fetch the signed delegation for that keypair and validate it.
5. Compose the delegated identity, persist it, and publish it in state.

Each attempt kind owns a single pending-outcome slot. The slot is claimed
synchronously before the first suspension point, so a second call of the
same kind while one is in flight is rejected with
:class:`ConcurrentLoginRejected` and never disturbs the running attempt.
Every other failure both rejects the caller and is recorded in
:class:`EngineState` as ``login_status == "error"`` with ``last_error`` set
to the same exception.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from passkey_identity.authenticator import Authenticator
from passkey_identity.authority.client import RemoteAuthorityClient, create_channel
from passkey_identity.authority.models import BindingDetails, DiscoverableChallenge
from passkey_identity.config import EngineConfig
from passkey_identity.delegation.chain import DelegationChain, build_chain
from passkey_identity.delegation.identity import DelegatedIdentity, compose_identity
from passkey_identity.errors import (
    AuthenticatorDeclined,
    ChannelNotReady,
    ConcurrentLoginRejected,
    CorruptStoredSession,
    NoStoredSession,
    PasskeyIdentityError,
)
from passkey_identity.engine.state import (
    EngineState,
    INITIAL_STATE,
    LoginStatus,
    PrepareStatus,
    merge_state,
)
from passkey_identity.keys.session_key import SessionKeyPair, SessionKeyProvider
from passkey_identity.storage.backend import FilesystemSessionStorage, MemorySessionStorage
from passkey_identity.storage.session_store import SessionStore

logger = logging.getLogger(__name__)

ChannelFactory = Callable[..., Optional[RemoteAuthorityClient]]
StateListener = Callable[[EngineState], None]

_NOT_READY_MESSAGE = (
    "Engine not initialized properly. Configure an authority_url before logging in."
)


class AttemptKind(str, Enum):
    """Kinds of login attempt; each kind has its own in-flight slot."""

    LOGIN = "login"
    EXTERNAL_SESSION_KEY = "external-session-key"


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful :meth:`AuthenticationEngine.login`."""

    identifier: str
    identity: DelegatedIdentity


class AuthenticationEngine:
    """Client-side engine for delegated-session authentication.

    Parameters
    ----------
    config:
        Engine configuration. Defaults to :class:`EngineConfig` defaults,
        which leave the authority channel disabled.
    authenticator:
        Passkey authenticator used during login.
    store:
        Session persistence. Defaults to filesystem storage under
        ``config.storage_dir`` when set, otherwise in-memory storage.
    key_provider:
        Source of fresh session keypairs.
    channel_factory:
        Builds authority clients; called as ``factory(config)`` for the
        unauthenticated channel and ``factory(config, identity)`` for the
        identity-bound channel. May return None for a disabled channel.

    Example
    -------
    ::

        engine = await AuthenticationEngine.create(config, authenticator=authenticator)
        result = await engine.login("alice")
        print(result.identifier, engine.state.is_login_success)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        authenticator: Optional[Authenticator] = None,
        store: Optional[SessionStore] = None,
        key_provider: Optional[SessionKeyProvider] = None,
        channel_factory: ChannelFactory = create_channel,
    ) -> None:
        self._config = config or EngineConfig()
        self._authenticator = authenticator
        self._store = store if store is not None else _default_store(self._config)
        self._key_provider = key_provider or SessionKeyProvider()
        self._channel_factory = channel_factory

        self._state: EngineState = INITIAL_STATE
        self._listeners: list[StateListener] = []
        self._pending: dict[AttemptKind, asyncio.Future] = {}
        self._initialized = False

        self._anonymous_channel: Optional[RemoteAuthorityClient] = None
        self._identity_channel: Optional[RemoteAuthorityClient] = None
        self._retired_channels: list[RemoteAuthorityClient] = []

    @classmethod
    async def create(
        cls,
        config: Optional[EngineConfig] = None,
        authenticator: Optional[Authenticator] = None,
        store: Optional[SessionStore] = None,
        key_provider: Optional[SessionKeyProvider] = None,
        channel_factory: ChannelFactory = create_channel,
    ) -> "AuthenticationEngine":
        """Construct an engine and run :meth:`initialize` on it."""
        engine = cls(config, authenticator, store, key_provider, channel_factory)
        await engine.initialize()
        return engine

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        """The current immutable state snapshot."""
        return self._state

    @property
    def anonymous_channel(self) -> Optional[RemoteAuthorityClient]:
        """Unauthenticated channel used for the login protocol."""
        return self._anonymous_channel

    @property
    def identity_channel(self) -> Optional[RemoteAuthorityClient]:
        """Channel whose requests are signed by the current identity."""
        return self._identity_channel

    @property
    def store(self) -> SessionStore:
        return self._store

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every new snapshot. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Restore a stored session and open the authority channel.

        The two steps touch disjoint state and run concurrently. Missing or
        unreadable stored sessions are logged and leave the engine
        unauthenticated. Calling this more than once has no effect.
        """
        if self._initialized:
            return
        self._initialized = True
        await asyncio.gather(self._restore_session(), self._open_channel())

    def clear(self) -> None:
        """Forget the current identity and delete the stored session."""
        if self._identity_channel is not None:
            self._retired_channels.append(self._identity_channel)
        self._identity_channel = None
        self._update_state(
            is_initializing=False,
            prepare_status=PrepareStatus.IDLE,
            prepare_error=None,
            login_status=LoginStatus.IDLE,
            last_error=None,
            current_identifier=None,
            current_identity=None,
            current_chain=None,
        )
        self._store.clear()
        logger.info("Cleared delegated identity and stored session.")

    async def aclose(self) -> None:
        """Close every channel the engine has opened."""
        channels = [self._anonymous_channel, self._identity_channel, *self._retired_channels]
        self._anonymous_channel = None
        self._identity_channel = None
        self._retired_channels = []
        for channel in channels:
            if channel is not None:
                await channel.aclose()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(self, identifier: Optional[str] = None) -> LoginResult:
        """Log in with the authenticator and obtain a delegated identity.

        Parameters
        ----------
        identifier:
            Claimed identifier. Omit it for a discoverable login, where the
            authority resolves the identifier from the assertion.

        Raises
        ------
        ConcurrentLoginRejected
            If another :meth:`login` is in flight.
        PasskeyIdentityError
            Any failure along the sequence; also recorded in :attr:`state`.
        """
        kind = AttemptKind.LOGIN
        pending = self._claim_slot(kind)
        try:
            await self._run_login(identifier)
        except Exception as exc:
            self._reject_unexpected(kind, exc, "Unable to login.")
        finally:
            self._release_slot(kind, pending)
        return await pending

    async def login_with_external_session_key(
        self, session_public_key: bytes, identifier: Optional[str] = None
    ) -> BindingDetails:
        """Log in on behalf of a caller-held session key.

        The delegation is not fetched here; pass the returned binding
        details to :meth:`fetch_delegation_for` once the caller is ready.

        Raises
        ------
        ConcurrentLoginRejected
            If another external-key login is in flight.
        PasskeyIdentityError
            Any failure along the sequence; also recorded in :attr:`state`.
        """
        kind = AttemptKind.EXTERNAL_SESSION_KEY
        pending = self._claim_slot(kind)
        try:
            binding = await self._prepare_and_submit(
                kind,
                identifier,
                session_public_key,
                failure_message="Login error with external session key.",
            )
            if binding is not None:
                self._update_state(login_status=LoginStatus.SUCCESS)
                self._resolve(kind, binding)
        except Exception as exc:
            self._reject_unexpected(kind, exc, "Login error with external session key.")
        finally:
            self._release_slot(kind, pending)
        return await pending

    async def fetch_delegation_for(
        self,
        identifier: str,
        session_public_key: bytes,
        expiration: int,
        root_public_key: bytes,
    ) -> DelegationChain:
        """Fetch and validate a delegation chain for *session_public_key*.

        Raises
        ------
        ChannelNotReady
            If no authority channel is configured.
        MalformedDelegation
            If the delegation was not issued to *session_public_key*.
        PasskeyIdentityError
            If the authority cannot provide the delegation.
        """
        channel = self._anonymous_channel
        if channel is None:
            raise ChannelNotReady(_NOT_READY_MESSAGE)
        return await self._fetch_chain(
            channel, identifier, session_public_key, expiration, root_public_key
        )

    # ------------------------------------------------------------------
    # Internal: attempt sequencing
    # ------------------------------------------------------------------

    async def _run_login(self, identifier: Optional[str]) -> None:
        kind = AttemptKind.LOGIN
        # A fresh keypair for every attempt; never cached or reused.
        session_key = self._key_provider.generate()
        binding = await self._prepare_and_submit(
            kind, identifier, session_key.public_key_der, failure_message="Unable to login."
        )
        if binding is None:
            return
        channel = self._anonymous_channel
        if channel is None:
            self._reject(kind, ChannelNotReady(_NOT_READY_MESSAGE))
            return
        try:
            result = await self._complete_login(channel, binding, session_key)
        except PasskeyIdentityError as exc:
            self._reject(kind, exc)
            return
        self._resolve(kind, result)

    async def _prepare_and_submit(
        self,
        kind: AttemptKind,
        identifier: Optional[str],
        session_public_key: bytes,
        failure_message: str,
    ) -> Optional[BindingDetails]:
        """Run the challenge and submit steps; returns None once *kind* is rejected."""
        channel = self._anonymous_channel
        if channel is None:
            self._reject(kind, ChannelNotReady(_NOT_READY_MESSAGE))
            return None

        self._update_state(
            login_status=LoginStatus.LOGGING_IN,
            last_error=None,
            prepare_status=PrepareStatus.PREPARING,
            prepare_error=None,
        )

        try:
            challenge = await channel.prepare_challenge(identifier)
            assertion = await self._get_assertion(challenge.payload)
        except PasskeyIdentityError as exc:
            self._update_state(prepare_status=PrepareStatus.ERROR, prepare_error=exc)
            self._reject(kind, exc)
            return None
        self._update_state(prepare_status=PrepareStatus.SUCCESS)

        auth_state = challenge.auth_state if isinstance(challenge, DiscoverableChallenge) else None
        try:
            return await channel.submit_assertion(
                assertion,
                session_public_key,
                auth_state=auth_state,
                identifier=identifier,
                expiration_hint_ms=self._config.expiration_hint_ms,
            )
        except PasskeyIdentityError as exc:
            self._reject(kind, exc.with_message(failure_message))
            return None

    async def _get_assertion(self, payload: str) -> str:
        if self._authenticator is None:
            raise AuthenticatorDeclined("No authenticator configured.")
        try:
            return await self._authenticator.get_assertion(payload)
        except PasskeyIdentityError:
            raise
        except Exception as exc:
            raise AuthenticatorDeclined("Webauthn fail", detail=str(exc)) from exc

    async def _complete_login(
        self,
        channel: RemoteAuthorityClient,
        binding: BindingDetails,
        session_key: SessionKeyPair,
    ) -> LoginResult:
        chain = await self._fetch_chain(
            channel,
            binding.identifier,
            session_key.public_key_der,
            binding.expiration,
            binding.root_public_key,
        )
        identity = compose_identity(session_key, chain)
        self._store.save(binding.identifier, session_key, chain)

        previous = self._identity_channel
        self._identity_channel = self._channel_factory(self._config, identity)
        if previous is not None:
            await previous.aclose()

        self._update_state(
            login_status=LoginStatus.SUCCESS,
            current_identifier=binding.identifier,
            current_identity=identity,
            current_chain=chain,
        )
        logger.info("Logged in as identifier=%r", binding.identifier)
        return LoginResult(identifier=binding.identifier, identity=identity)

    async def _fetch_chain(
        self,
        channel: RemoteAuthorityClient,
        identifier: str,
        session_public_key: bytes,
        expiration: int,
        root_public_key: bytes,
    ) -> DelegationChain:
        try:
            signed = await channel.fetch_delegation(identifier, session_public_key, expiration)
        except PasskeyIdentityError as exc:
            raise exc.with_message("Unable to get identity.") from exc
        return build_chain(signed, root_public_key, session_public_key)

    # ------------------------------------------------------------------
    # Internal: initialization
    # ------------------------------------------------------------------

    async def _restore_session(self) -> None:
        try:
            stored = self._store.load()
        except NoStoredSession as exc:
            logger.info("Could not load identity from storage: %s", exc.message)
            self._update_state(is_initializing=False)
            return
        except CorruptStoredSession as exc:
            logger.warning("Ignoring unreadable stored identity: %s (%s)", exc.message, exc.detail)
            self._update_state(is_initializing=False)
            return

        identity = stored.identity
        self._identity_channel = self._channel_factory(self._config, identity)
        self._update_state(
            current_identifier=stored.identifier,
            current_identity=identity,
            current_chain=stored.chain,
            is_initializing=False,
        )
        logger.info("Restored stored identity for identifier=%r", stored.identifier)

    async def _open_channel(self) -> None:
        channel = self._channel_factory(self._config)
        self._anonymous_channel = channel
        if channel is None or not self._config.is_local_network:
            return
        try:
            await channel.transport.fetch_root_key()
        except PasskeyIdentityError as exc:
            logger.warning(
                "Unable to fetch root key. Check to ensure that your local authority "
                "is running: %s",
                exc.detail or exc.message,
            )

    # ------------------------------------------------------------------
    # Internal: state and pending outcomes
    # ------------------------------------------------------------------

    def _update_state(self, **changes: object) -> None:
        self._state = merge_state(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener %r raised", listener)

    def _claim_slot(self, kind: AttemptKind) -> asyncio.Future:
        current = self._pending.get(kind)
        if current is not None and not current.done():
            raise ConcurrentLoginRejected(
                "Don't call login while another login is running.",
                detail=f"{kind.value} attempt already in flight",
            )
        pending: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[kind] = pending
        return pending

    def _release_slot(self, kind: AttemptKind, pending: asyncio.Future) -> None:
        if self._pending.get(kind) is pending:
            del self._pending[kind]
        if not pending.done():
            pending.cancel()

    def _resolve(self, kind: AttemptKind, value: object) -> None:
        pending = self._pending.pop(kind, None)
        if pending is not None and not pending.done():
            pending.set_result(value)

    def _reject(self, kind: AttemptKind, error: PasskeyIdentityError) -> None:
        logger.error("%s attempt failed: %s %s", kind.value, error.message, error.detail)
        self._update_state(login_status=LoginStatus.ERROR, last_error=error)
        pending = self._pending.pop(kind, None)
        if pending is not None and not pending.done():
            pending.set_exception(error)

    def _reject_unexpected(self, kind: AttemptKind, exc: Exception, message: str) -> None:
        """Record a failure that did not come from this package as *message*."""
        logger.exception("%s attempt raised an unexpected error", kind.value)
        error = PasskeyIdentityError(message, detail=f"{type(exc).__name__}: {exc}")
        error.__cause__ = exc
        if self._state.is_preparing_login:
            self._update_state(prepare_status=PrepareStatus.ERROR, prepare_error=error)
        self._reject(kind, error)


def _default_store(config: EngineConfig) -> SessionStore:
    if config.storage_dir is not None:
        return SessionStore(FilesystemSessionStorage(config.storage_dir), key=config.storage_key)
    return SessionStore(MemorySessionStorage(), key=config.storage_key)


__all__ = ["AttemptKind", "AuthenticationEngine", "LoginResult"]
