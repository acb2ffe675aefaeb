"""On-demand installation of Playwright browser binaries."""

from __future__ import annotations

import asyncio
import sys

from loguru import logger

_INSTALL_LOCK = asyncio.Lock()
_INSTALL_TIMEOUT_S = 10 * 60
_MISSING_BROWSER_MARKERS = (
    "executable doesn't exist",
    "please run the following command",
    "browser has not been found",
)


def is_missing_browser_error(exc: BaseException) -> bool:
    """Playwright launch failed because the browser binary is not installed."""
    text = str(exc).lower()
    return any(marker in text for marker in _MISSING_BROWSER_MARKERS)


async def install_browser(browser: str, *, timeout_s: int = _INSTALL_TIMEOUT_S) -> tuple[bool, str]:
    """Run ``python -m playwright install <browser>``; returns (ok, trimmed output)."""
    if not browser:
        return False, "No browser target specified"

    async with _INSTALL_LOCK:
        logger.info("Installing Playwright browser {}", browser)
        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            browser,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
        except asyncio.TimeoutError:
            process.kill()
            return False, f"playwright install {browser} timed out after {timeout_s}s"

    output = "\n".join(
        part
        for part in (
            stdout.decode("utf-8", errors="replace").strip(),
            stderr.decode("utf-8", errors="replace").strip(),
        )
        if part
    )
    if process.returncode == 0:
        return True, _tail(output) or f"{browser} installed"
    return False, _tail(output) or f"playwright install exited with code {process.returncode}"


def _tail(text: str, max_chars: int = 2000) -> str:
    if len(text) <= max_chars:
        return text
    return "..." + text[-max_chars:]
