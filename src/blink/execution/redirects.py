"""Per-hop redirect policy."""

from blink.errors import RedirectBlocked, RedirectLimitExceeded
from blink.security.url_guard import UrlPolicy


class RedirectGuard:
    """Counts followed hops and re-validates every redirect target.

    With ``policy=None`` the guard only enforces the hop ceiling; that is the
    local agent's configuration.
    """

    def __init__(self, max_redirects: int, policy: UrlPolicy | None = None) -> None:
        self.max_redirects = max_redirects
        self.policy = policy
        self.hops = 0

    async def admit(self, url: str) -> None:
        """Gate for hop 0, before any socket is opened."""
        if self.policy is None:
            return
        verdict = await self.policy.acheck(url)
        verdict.raise_for_outcome()

    async def follow(self, target: str) -> None:
        """Approve following one more redirect to ``target`` or raise."""
        if self.hops >= self.max_redirects:
            raise RedirectLimitExceeded(f"stopped after {self.max_redirects} redirects")
        if self.policy is not None:
            verdict = await self.policy.acheck(target)
            if not verdict.allowed:
                raise RedirectBlocked(verdict)
        self.hops += 1
