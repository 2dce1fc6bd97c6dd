"""Configuration for the response monitor."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class MonitorConfig:
    """
    Immutable settings for one monitor instance.

    Attributes:
        recipient_email: Address that receives outbound notifications; only
            replies sent from it are eligible for extraction
        imap_server: IMAP host
        imap_port: IMAP port
        imap_use_ssl: Connect with implicit TLS (IMAP4_SSL)
        imap_username: IMAP login, defaults to ``username`` when empty
        imap_password: IMAP password, defaults to ``password`` when empty
        imap_mailbox: Mailbox to search
        imap_timeout: Socket timeout in seconds for the IMAP session
        username: Outbound (SMTP) login
        password: Outbound (SMTP) password
        from_email: Outbound sender identity
        poll_interval_ms: Delay between poll cycles in milliseconds
        responses_dir: Fallback drop directory
        response_file: Sink file consumed by the log processor
        channel_size: Capacity of the in-process response channel
    """
    recipient_email: str
    imap_server: str = "imap.gmail.com"
    imap_port: int = 993
    imap_use_ssl: bool = True
    imap_username: Optional[str] = None
    imap_password: Optional[str] = None
    imap_mailbox: str = "INBOX"
    imap_timeout: float = 30.0
    username: str = ""
    password: str = ""
    from_email: str = ""
    poll_interval_ms: int = 30000
    responses_dir: Path = field(default_factory=lambda: Path("responses"))
    response_file: Path = field(default_factory=lambda: Path("response.txt"))
    channel_size: int = 100

    def __post_init__(self):
        if not self.recipient_email or not self.recipient_email.strip():
            raise ConfigurationError("recipient_email is required")
        if self.poll_interval_ms <= 0:
            raise ConfigurationError(
                f"poll_interval_ms must be positive: {self.poll_interval_ms}"
            )
        if self.channel_size <= 0:
            raise ConfigurationError(f"channel_size must be positive: {self.channel_size}")
        # frozen: normalise path fields through object.__setattr__
        if isinstance(self.responses_dir, str):
            object.__setattr__(self, "responses_dir", Path(self.responses_dir))
        if isinstance(self.response_file, str):
            object.__setattr__(self, "response_file", Path(self.response_file))

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0

    def imap_credentials(self) -> Tuple[str, str]:
        """IMAP login pair, falling back to the outbound credentials."""
        return (
            self.imap_username or self.username,
            self.imap_password or self.password,
        )
