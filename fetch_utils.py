# -*- coding: utf-8 -*-
"""
Bulk fetching: one FETCH for the whole identifier set, run in a background
thread that hands messages to the consumer through a bounded queue.
"""

import dataclasses
import imaplib
import logging
import queue
import re
import threading

import config_data
from imap_utils import IdentifierSet

logger = logging.getLogger(__name__)

# Marks the end of the message queue
END_OF_FETCH = object()

FETCH_PREFIX = re.compile(rb"^\s*(\d+)\s+\(")


@dataclasses.dataclass
class MessageEnvelope:
    seq: int
    literals: list


def iter_envelopes(data):
    """
    Group an imaplib FETCH response into envelopes.

    imaplib returns (prefix, literal) tuples interleaved with closing
    b")" strings; a message can carry more than one literal.

    Yields:
        MessageEnvelope objects in response order
    """
    current = None
    for item in data:
        if not isinstance(item, tuple):
            continue
        match = FETCH_PREFIX.match(item[0])
        if match:
            seq = int(match.group(1))
            if current is not None and current.seq != seq:
                yield current
                current = None
            if current is None:
                current = MessageEnvelope(seq, [])
        elif current is None:
            logger.warning("Skipping literal without message number: %r", item[0][:40])
            continue
        current.literals.append(item[1])
    if current is not None:
        yield current


class FetchStream:
    """
    Background fetch of full message bodies.

    Messages arrive on a bounded queue; the outcome of the FETCH command
    (None or the exception) arrives on a single-slot completion queue once
    every message has been queued. The producer only reads the response of
    its own command; the consumer must not issue commands until wait()
    has returned.

    imaplib reads the whole FETCH response before returning it, so
    extraction overlaps only the queueing of already received messages,
    not the download itself.
    """

    def __init__(self, session, identifiers, queue_size=config_data.message_queue_size):
        self.session = session
        self.identifiers = identifiers
        self.messages = queue.Queue(maxsize=queue_size)
        self.done = queue.Queue(maxsize=1)
        self._thread = threading.Thread(target=self._produce, name="fetch", daemon=True)
        self._finished = False

    def start(self):
        logger.debug(
            "Fetching %d messages from %s", len(self.identifiers), self.identifiers.folder
        )
        self._thread.start()
        return self

    def _produce(self):
        error = None
        try:
            typ, data = self.session.connection.fetch(
                str(self.identifiers), config_data.fetch_items
            )
            if typ != "OK":
                raise imaplib.IMAP4.error(f"FETCH failed: {data}")
            for envelope in iter_envelopes(data):
                self.messages.put(envelope)
        except Exception as e:  # handed to the consumer through the completion queue
            error = e
        finally:
            self.messages.put(END_OF_FETCH)
            self.done.put(error)

    def __iter__(self):
        while not self._finished:
            envelope = self.messages.get()
            if envelope is END_OF_FETCH:
                self._finished = True
                return
            yield envelope

    def drain(self):
        """Discard whatever is still queued so the producer can finish"""
        for envelope in self:
            logger.debug("Discarding message %d", envelope.seq)

    def wait(self):
        """Block until the FETCH has completed and return its error, if any"""
        error = self.done.get()
        self._thread.join()
        return error


def fetch_all(session, identifiers):
    """
    Start fetching the located messages.

    Args:
        session: MailSession with the source folder selected
        identifiers: Sequence numbers from find_unread

    Returns:
        Started FetchStream
    """
    if not isinstance(identifiers, IdentifierSet):
        identifiers = IdentifierSet(session.selected_folder, identifiers)
    return FetchStream(session, identifiers).start()
