#!/usr/bin/env python3
"""gss-exchange quickstart -- Hello There example.

Demonstrates the core workflow in a single process:

1. Register a client and a service principal in an in-memory store.
2. Start a session server for the service on a free port.
3. Run one client session: negotiate, send "Hello There!", read the reply.
4. Inspect the negotiated properties.
5. Show what a tampered message looks like to the receiver.

Run:
    python examples/quickstart.py
"""
from __future__ import annotations

import asyncio
import logging

from gss_exchange import (
    ContextOptions,
    ContextRole,
    InMemoryCredentialStore,
    IntegrityViolation,
    SecurityContext,
    SessionConfig,
    SessionServer,
    SignedDHMechanism,
    protect,
    run_client,
    unprotect,
)

CLIENT = "alice@EXAMPLE.COM"
SERVICE = "echo@server.example.com"


async def main() -> None:
    logging.basicConfig(level=logging.WARNING)

    # -- Step 1: Principals ------------------------------------------------------
    credentials = InMemoryCredentialStore()
    credentials.register(CLIENT)
    credentials.register(SERVICE)
    print(f"[1] Registered {CLIENT} and {SERVICE}")

    # -- Step 2: Server ----------------------------------------------------------
    server = SessionServer(
        SessionConfig(local_name=SERVICE, port=0),
        credentials,
        SignedDHMechanism(credentials),
    )
    async with server:
        print(f"[2] Server listening on 127.0.0.1:{server.port}")

        # -- Step 3: Client session ----------------------------------------------
        result = await run_client(
            SessionConfig(local_name=CLIENT, peer_name=SERVICE, port=server.port),
            credentials,
            SignedDHMechanism(credentials),
            b"Hello There!",
        )

    # -- Step 4: Negotiated properties ---------------------------------------------
    print(f"[3] Context established in {result.rounds} round(s)")
    print(f"    Client principal:  {result.local_identity}")
    print(f"    Server principal:  {result.peer_identity}")
    print(f"    Mutual auth:       {result.mutual_auth_achieved}")
    print(f"    Protection:        {result.protection_capability.value}")
    assert result.reply is not None
    print(f"[4] Reply ({result.reply_protection}): {result.reply.decode('utf-8')}")

    # -- Step 5: Tamper detection --------------------------------------------------
    mechanism = SignedDHMechanism(credentials)
    initiator = SecurityContext(mechanism, credentials.acquire(CLIENT), SERVICE)
    acceptor = SecurityContext(
        mechanism,
        credentials.acquire(SERVICE),
        None,
        ContextOptions(role=ContextRole.ACCEPTOR),
    )
    initiator.step(acceptor.step(initiator.step().token).token)

    tampered = bytearray(protect(initiator, b"Hello There!").data)
    tampered[-1] ^= 0x01
    try:
        unprotect(acceptor, bytes(tampered))
    except IntegrityViolation as exc:
        print(f"[5] Tampered message rejected: {exc.code} {exc.message}")
    finally:
        initiator.dispose()
        acceptor.dispose()


if __name__ == "__main__":
    asyncio.run(main())
