"""macOS Keychain lookups for the legacy Safe Storage password.

Wraps the macOS ``security`` CLI tool. Only reads generic passwords; the
store never writes to the Keychain.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

# Exit code when an item is not found in Keychain
_ERR_ITEM_NOT_FOUND = 44
# Exit code when the user denies access in the authorization dialog
_ERR_USER_CANCELED = 128


class MacKeychain:
    """Reads generic passwords from the user's login keychain via ``security``."""

    async def _run(self, *args: str) -> tuple[int, bytes, bytes]:
        """Run a ``security`` subcommand and return (returncode, stdout, stderr)."""
        proc = await asyncio.create_subprocess_exec(
            "security",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        return proc.returncode or 0, stdout, stderr

    async def find_password(self, service: str, account: str | None = None) -> str | None:
        """Return the password stored for *service* (and *account*), or ``None``."""
        args = ["find-generic-password", "-s", service]
        if account:
            args += ["-a", account]
        args.append("-w")
        try:
            returncode, stdout, stderr = await self._run(*args)
        except FileNotFoundError:
            logger.info("security CLI not found; Keychain unavailable")
            return None

        if returncode == _ERR_ITEM_NOT_FOUND:
            logger.info("No Keychain item for service %r", service)
            return None
        if returncode == _ERR_USER_CANCELED:
            logger.warning("Keychain access to %r was denied", service)
            return None
        if returncode != 0:
            logger.warning(
                "security find-generic-password exited %d: %s",
                returncode,
                stderr.decode("utf-8", errors="replace").strip(),
            )
            return None

        # -w prints the bare password followed by a newline
        password = stdout.decode("utf-8", errors="replace").rstrip("\n")
        return password or None
