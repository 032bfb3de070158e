"""Logging configuration for the LayerEdge node bot.

Sets up a dual-handler logging pipeline:

1. **Console** -- :class:`SafeStreamHandler` that gracefully handles
   Unicode on Windows by falling back to ``cp1252`` replacement
   encoding.
2. **File** -- :class:`CompressedRotatingFileHandler` writing to
   ``logs/layeredge_bot.log`` with automatic gzip rotation (10 MiB per
   file, 5 backups).

The ``verbose`` flag is read once at startup: it lowers the root level to
``DEBUG`` so that per-request diagnostics from the request handler show up.

Usage::

    from core.logging_setup import setup_logging
    setup_logging("INFO", verbose=True)
"""

import gzip
import io
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

PROGRESS_MARKS = {
    "success": "✔",
    "failed": "✘",
}
DEFAULT_PROGRESS_MARK = "➤"


class CompressedRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that gzip-compresses rotated log files.

    Rotated files are renamed with a ``.gz`` suffix and compressed
    in-place, keeping disk usage low for a bot that never exits.
    """

    def rotation_filename(self, default_name: str) -> str:
        """Append ``.gz`` to the rotated file name.

        Args:
            default_name: Rotation path chosen by ``RotatingFileHandler``
                (e.g. ``layeredge_bot.log.1``).

        Returns:
            The same path with a ``.gz`` suffix.
        """
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        """Compress *source* into *dest* using gzip.

        *source* is deleted once the compressed copy is written.

        Args:
            source: Log file being rotated out.
            dest: Compressed backup path.
        """
        with open(source, 'rb') as f_in:
            with gzip.open(dest, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that safely handles Unicode on Windows.

    Progress lines carry ``✔``/``✘``/``➤`` marks which a narrow Windows
    code page cannot represent.  This handler catches
    :exc:`UnicodeEncodeError` and falls back to ``cp1252`` with
    replacement characters so that logging never crashes the loop.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Write *record*, degrading unencodable characters on Windows.

        Args:
            record: The log record to write.
        """
        try:
            msg = self.format(record)
            stream = self.stream
            if sys.platform == "win32":
                try:
                    stream.write(msg + self.terminator)
                except UnicodeEncodeError:
                    safe_msg = msg.encode(
                        'cp1252', errors='replace',
                    ).decode('cp1252')
                    stream.write(safe_msg + self.terminator)
            else:
                stream.write(msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def resolve_level(log_level: str = "INFO", verbose: bool = False) -> int:
    """Return the numeric root level for *log_level* and *verbose*.

    ``verbose`` only ever lowers the level: a ``WARNING`` configuration
    stays quiet about diagnostics unless verbose is requested.

    Args:
        log_level: Level name; unknown names fall back to ``INFO``.
        verbose: Lower the level to ``DEBUG`` for request diagnostics.

    Returns:
        A ``logging`` level number.
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    if verbose:
        return min(level, logging.DEBUG)
    return level


def setup_logging(
    log_level: str = "INFO",
    verbose: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger with console and file handlers.

    On Windows the function first reconfigures ``sys.stdout`` and
    ``sys.stderr`` to use UTF-8 (with replacement for unencodable
    characters) before any handler is created.

    Args:
        log_level: Logging level name (e.g. ``"DEBUG"``,
            ``"INFO"``, ``"WARNING"``).  Defaults to ``"INFO"``.
        verbose: Emit request-level diagnostics.
        log_file: Log file path.  Defaults to ``logs/layeredge_bot.log``.
    """
    # Must happen BEFORE creating StreamHandler
    if sys.platform == "win32":
        try:
            if hasattr(sys.stdout, 'reconfigure'):
                sys.stdout.reconfigure(
                    encoding='utf-8', errors='replace',
                )
                sys.stderr.reconfigure(
                    encoding='utf-8', errors='replace',
                )
            else:
                sys.stdout = io.TextIOWrapper(
                    sys.stdout.buffer,
                    encoding='utf-8',
                    errors='replace',
                    line_buffering=True,
                )
                sys.stderr = io.TextIOWrapper(
                    sys.stderr.buffer,
                    encoding='utf-8',
                    errors='replace',
                    line_buffering=True,
                )
        except Exception:
            os.environ['PYTHONIOENCODING'] = 'utf-8:replace'

    level = resolve_level(log_level, verbose)

    log_path = log_file or os.path.join("logs", "layeredge_bot.log")
    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    file_handler = CompressedRotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8',
    )

    stream_handler = SafeStreamHandler(sys.stdout)

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s - %(message)s',
        handlers=[file_handler, stream_handler],
        force=True,
    )
    # aiohttp's access/client chatter is not useful even in verbose mode
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))


def format_progress(wallet: str, step: str, status: str) -> str:
    """Build a ``[PROGRESS]`` line for *wallet* at *step*."""
    mark = PROGRESS_MARKS.get(status, DEFAULT_PROGRESS_MARK)
    return f"[PROGRESS] {mark} {wallet} - {step}"


def log_progress(
    log: logging.Logger, wallet: str, step: str, status: str = "processing",
) -> None:
    """Log a pipeline progress line.

    ``failed`` is logged at ERROR so it survives a quiet log level; the
    other states are INFO.

    Args:
        log: Logger to write to.
        wallet: Wallet address shown in the line.
        step: Pipeline step label.
        status: ``success``, ``failed`` or any in-progress state.
    """
    level = logging.ERROR if status == "failed" else logging.INFO
    log.log(level, format_progress(wallet, step, status))
