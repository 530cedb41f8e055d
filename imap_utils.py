# -*- coding: utf-8 -*-
"""
IMAP protocol utilities: session lifecycle, identifier sets, unread search.
"""

import base64
import imaplib
import logging
import re
import ssl
import urllib.parse

import config_data
from errors import SearchError, SessionError

logger = logging.getLogger(__name__)

# imaplib states in which commands can still be issued
LIVE_STATES = ("NONAUTH", "AUTH", "SELECTED")

# Failures that leave the underlying socket unusable
CONNECTION_LOST = (imaplib.IMAP4.abort, OSError)


def parse_address(uri, tls=True):
    """
    Split the configured server address into host and port.

    Accepts "host", "host:port", "[v6addr]:port" and imap:// / imaps:// URIs.

    Returns:
        (host, port) tuple; port defaults by transport mode
    """
    if "://" not in uri:
        uri = "//" + uri
    try:
        parts = urllib.parse.urlsplit(uri)
        port = parts.port
    except ValueError:
        raise SessionError(f"Can't parse server address {uri!r}")
    if not parts.hostname:
        raise SessionError(f"Can't parse server address {uri!r}")
    if port is None:
        port = config_data.imaps_port if tls else config_data.imap_port
    return parts.hostname, port


def encode_folder(name):
    """
    Encode a folder name in IMAP modified UTF-7 (RFC 3501 section 5.1.3).

    Printable ASCII passes through, "&" becomes "&-", and runs of other
    characters become "&" + modified base64 of their UTF-16BE form + "-".
    """
    encoded = []
    pending = []

    def flush():
        if pending:
            raw = "".join(pending).encode("utf-16-be")
            b64 = base64.b64encode(raw).decode("ascii").rstrip("=").replace("/", ",")
            encoded.append("&" + b64 + "-")
            pending.clear()

    for ch in name:
        if 0x20 <= ord(ch) <= 0x7E:
            flush()
            encoded.append("&-" if ch == "&" else ch)
        else:
            pending.append(ch)
    flush()
    return "".join(encoded)


def quote_folder(name):
    """Encode and quote a folder name for use as an IMAP astring"""
    name = encode_folder(name)
    if name.startswith('"') and name.endswith('"') and len(name) > 1:
        return name
    if re.search(r'[\s"\\(){%*\]]', name) or not name:
        return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return name


def open_connection(config):
    """
    Dial the server and authenticate.

    Uses direct TLS when config.tls is set, otherwise dials in plaintext
    and upgrades with STARTTLS before sending credentials.

    Returns:
        Authenticated imaplib connection

    Raises:
        SessionError: On dial, upgrade or login failures
    """
    host, port = parse_address(config.imap_uri, config.tls)
    logger.debug("Logging in as %s on %s:%s. TLS: %s", config.username, host, port, config.tls)
    context = ssl.create_default_context()

    try:
        if config.tls:
            logger.debug("Dialing TLS...")
            connection = imaplib.IMAP4_SSL(host, port, ssl_context=context)
        else:
            logger.debug("Dialing without TLS...")
            connection = imaplib.IMAP4(host, port)
            logger.debug("Starting TLS...")
            connection.starttls(ssl_context=context)
    except (OSError, imaplib.IMAP4.error) as e:
        raise SessionError(f"Connecting to {host}:{port} failed: {e}")

    if config.debug_level > 1:
        connection.debug = 4

    logger.debug("Sending login request...")
    try:
        connection.login(config.username, config.password)
    except (OSError, imaplib.IMAP4.error) as e:
        disconnect(connection)
        raise SessionError(f"{config.username} - Login failed: {e}")

    logger.info("Logged in as %s", config.username)
    return connection


def disconnect(connection):
    """Cleanly close IMAP connection"""
    try:
        if connection.state == "SELECTED":
            connection.close()
        connection.logout()
    except (OSError, imaplib.IMAP4.error) as e:
        logger.debug("Ignoring error during logout: %s", e)


class MailSession:
    """
    Owns the single connection to the mail store.

    The connection handle is replaced whenever ensure_connected finds
    it unusable. Only one logical flow may issue commands at a time.
    """

    def __init__(self, config, connect_fn=None):
        self.config = config
        self.connection = None
        self.selected_folder = None
        self.reconnects = 0
        self._connect_fn = connect_fn or open_connection

    @property
    def state(self):
        if self.connection is None:
            return "LOGOUT"
        return self.connection.state

    def connect(self):
        self.connection = self._connect_fn(self.config)
        self.selected_folder = None
        return self

    def ensure_connected(self):
        """Reconnect and re-authenticate unless the session is in a live state"""
        logger.debug("Checking connection state: %s", self.state)
        if self.state not in LIVE_STATES:
            logger.info("Session is disconnected, logging in again")
            self.reconnects += 1
            self.connect()

    def mark_disconnected(self):
        """Close a connection whose socket failed, so the next use redials"""
        if self.connection is not None:
            try:
                self.connection.shutdown()
            except OSError as e:
                logger.debug("Ignoring error while closing socket: %s", e)
        self._forget()

    def _forget(self):
        self.connection = None
        self.selected_folder = None

    def select(self, folder, readonly=False):
        """
        Select a folder.

        Raises:
            SearchError: If the server refuses the folder
        """
        logger.debug("Selecting folder: %s (readonly=%s)", folder, readonly)
        typ, data = self.connection.select(quote_folder(folder), readonly)
        if typ != "OK":
            self.selected_folder = None
            raise SearchError(f"Selecting {folder} failed: {data}")
        self.selected_folder = folder
        return data

    def search_unseen(self):
        """Return sequence numbers of messages in the selected folder lacking \\Seen"""
        typ, data = self.connection.search(None, "UNSEEN")
        if typ != "OK":
            raise SearchError(f"Search in {self.selected_folder} failed: {data}")
        return [int(num) for num in b" ".join(d for d in data if d).split()]

    def logout(self):
        if self.connection is not None:
            disconnect(self.connection)
        self._forget()


def connect(config, connect_fn=None):
    """
    Create an authenticated session.

    Raises:
        SessionError: On dial or authentication failure
    """
    return MailSession(config, connect_fn).connect()


def ensure_connected(session):
    session.ensure_connected()


class IdentifierSet:
    """
    Compact set of sequence numbers bound to the folder they were found in.

    Sequence numbers are only meaningful inside that folder, so operations
    check the selected folder before using the set.
    """

    def __init__(self, folder, numbers=()):
        self.folder = folder
        self._numbers = set()
        self.add(*numbers)

    def add(self, *numbers):
        for num in numbers:
            num = int(num)
            if num < 1:
                raise ValueError(f"Sequence numbers start at 1, got {num}")
            self._numbers.add(num)

    def clear(self):
        self._numbers.clear()

    def __contains__(self, num):
        return num in self._numbers

    def __iter__(self):
        return iter(sorted(self._numbers))

    def __len__(self):
        return len(self._numbers)

    def __bool__(self):
        return bool(self._numbers)

    def __str__(self):
        ranges = []
        start = prev = None
        for num in self:
            if start is None:
                start = prev = num
            elif num == prev + 1:
                prev = num
            else:
                ranges.append((start, prev))
                start = prev = num
        if start is not None:
            ranges.append((start, prev))
        return ",".join(str(a) if a == b else f"{a}:{b}" for a, b in ranges)

    def __repr__(self):
        return f"IdentifierSet({self.folder!r}, {str(self)!r})"


def find_unread(session, folder):
    """
    Find messages without the \\Seen flag.

    Opens the folder read-only. Selection and search failures are
    logged and reported as an empty result.

    Args:
        session: MailSession
        folder: Folder name to search

    Returns:
        List of sequence numbers in server order
    """
    logger.debug("Fetching unread messages from folder: %s", folder)
    try:
        session.select(folder, readonly=True)
        logger.debug("Sending search request...")
        ids = session.search_unseen()
    except SearchError as e:
        logger.error("%s", e)
        return []
    except CONNECTION_LOST as e:
        logger.error("Connection lost while searching %s: %s", folder, e)
        session.mark_disconnected()
        return []
    except imaplib.IMAP4.error as e:
        logger.error("Searching %s failed: %s", folder, e)
        return []

    logger.info("Found %d unread messages in %s", len(ids), folder)
    return ids
