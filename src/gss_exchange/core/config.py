"""gss-exchange session configuration.

Defines the validated configuration model consumed by the session
driver, the framing layer and the security context.  A configuration is
always passed in explicitly; nothing in the package reads a process-wide
instance.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from gss_exchange.core.types import ContextOptions, ContextRole, MutualAuthPolicy


class SessionConfig(BaseModel):
    """Configuration for one initiator or acceptor endpoint.

    All fields carry defaults so that a minimal configuration (just
    ``local_name``, plus ``peer_name`` for an initiator) is sufficient for
    development.
    """

    model_config = ConfigDict(strict=True)

    local_name: str = Field(
        description="Principal name whose credential this endpoint acquires.",
    )
    peer_name: str | None = Field(
        default=None,
        description=(
            "Principal name of the acceptor.  Required for initiators; "
            "acceptors learn the peer from the negotiation."
        ),
    )
    host: str = Field(default="127.0.0.1", description="Address to connect to or bind.")
    port: int = Field(default=4567, ge=0, le=65535)
    max_frame_size: int = Field(
        default=1_048_576,  # 1 MiB
        ge=1,
        le=0xFFFFFFFF,
        description="Largest frame body accepted or emitted, in bytes.",
    )
    max_rounds: int = Field(
        default=10,
        ge=1,
        description="Upper bound on negotiation rounds per context.",
    )
    negotiation_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Wall-clock bound on the whole negotiation, in seconds.",
    )
    io_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Bound on any single frame read, in seconds.",
    )
    request_mutual_auth: bool = Field(
        default=True,
        description=(
            "Initiator: ask the acceptor to authenticate itself.  "
            "Acceptor: honour such requests."
        ),
    )
    mutual_auth_policy: MutualAuthPolicy = Field(
        default=MutualAuthPolicy.WARN,
        strict=False,
        description=(
            "Reaction when mutual authentication was requested but not "
            "achieved: log a warning or abort the session."
        ),
    )
    request_confidentiality: bool = Field(
        default=True,
        description="Ask for confidentiality on outbound application payloads.",
    )
    allow_confidentiality: bool = Field(
        default=True,
        description="Offer confidentiality during negotiation.",
    )
    token_lifetime: int = Field(default=300, ge=1)
    clock_skew: int = Field(default=30, ge=0)

    def context_options(self, role: ContextRole) -> ContextOptions:
        """Build the per-context negotiation request for *role*."""
        return ContextOptions(
            role=role,
            mutual_auth=self.request_mutual_auth,
            confidentiality=self.allow_confidentiality,
            token_lifetime=self.token_lifetime,
            clock_skew=self.clock_skew,
        )
