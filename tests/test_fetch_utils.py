# -*- coding: utf-8 -*-
"""
Tests for fetch_utils.py - FETCH response parsing and the background producer.
"""

import imaplib
import threading
import unittest
from unittest.mock import Mock

from fetch_utils import FetchStream, MessageEnvelope, fetch_all, iter_envelopes
from imap_utils import IdentifierSet, MailSession
from mail_fixtures import fetch_response, make_config, make_connection


def make_session(connection):
    session = MailSession(make_config("/tmp"), connect_fn=Mock())
    session.connection = connection
    session.selected_folder = "INBOX"
    return session


class TestIterEnvelopes(unittest.TestCase):
    """Tests for grouping imaplib FETCH data into envelopes"""

    def test_one_envelope_per_message(self):
        data = fetch_response([(1, b"first"), (2, b"second")])

        envelopes = list(iter_envelopes(data))

        self.assertEqual(
            envelopes,
            [MessageEnvelope(1, [b"first"]), MessageEnvelope(2, [b"second"])],
        )

    def test_keeps_response_order(self):
        data = fetch_response([(5, b"e"), (2, b"b")])
        self.assertEqual([e.seq for e in iter_envelopes(data)], [5, 2])

    def test_several_literals_for_one_message(self):
        data = [(b"3 (BODY[HEADER] {4}", b"head"), (b" BODY[TEXT] {4}", b"body"), b")"]

        envelopes = list(iter_envelopes(data))

        self.assertEqual(envelopes, [MessageEnvelope(3, [b"head", b"body"])])

    def test_empty_response(self):
        self.assertEqual(list(iter_envelopes([])), [])


class TestFetchStream(unittest.TestCase):
    """Tests for the producer/consumer hand-over"""

    def test_delivers_all_messages_then_completes(self):
        connection = make_connection(fetch_data=fetch_response([(1, b"a"), (2, b"b"), (3, b"c")]))
        stream = FetchStream(make_session(connection), IdentifierSet("INBOX", [1, 2, 3])).start()

        seqs = [envelope.seq for envelope in stream]

        self.assertEqual(seqs, [1, 2, 3])
        self.assertIsNone(stream.wait())

    def test_issues_one_fetch_for_whole_set(self):
        connection = make_connection(fetch_data=fetch_response([(1, b"a")]))
        stream = FetchStream(make_session(connection), IdentifierSet("INBOX", [1, 2, 3, 7])).start()
        list(stream)
        stream.wait()

        connection.fetch.assert_called_once_with("1:3,7", "(BODY.PEEK[])")

    def test_bounded_queue_does_not_lose_messages(self):
        messages = [(n, b"x") for n in range(1, 26)]
        connection = make_connection(fetch_data=fetch_response(messages))
        stream = FetchStream(
            make_session(connection), IdentifierSet("INBOX", range(1, 26)), queue_size=2
        ).start()

        self.assertEqual(len(list(stream)), 25)
        self.assertIsNone(stream.wait())

    def test_consumer_starts_before_producer_finishes(self):
        release = threading.Event()
        connection = make_connection()

        def slow_fetch(*args):
            release.wait(5)
            return ("OK", fetch_response([(1, b"a"), (2, b"b")]))

        connection.fetch.side_effect = slow_fetch
        stream = FetchStream(make_session(connection), IdentifierSet("INBOX", [1, 2])).start()

        self.assertTrue(stream.done.empty())
        release.set()
        self.assertEqual([e.seq for e in stream], [1, 2])
        self.assertIsNone(stream.wait())

    def test_fetch_refused(self):
        connection = make_connection()
        connection.fetch.return_value = ("NO", [b"no such message"])
        stream = FetchStream(make_session(connection), IdentifierSet("INBOX", [1])).start()

        self.assertEqual(list(stream), [])
        self.assertIsInstance(stream.wait(), imaplib.IMAP4.error)

    def test_connection_loss_reported_on_completion(self):
        connection = make_connection()
        connection.fetch.side_effect = imaplib.IMAP4.abort("socket error")
        stream = FetchStream(make_session(connection), IdentifierSet("INBOX", [1])).start()

        self.assertEqual(list(stream), [])
        self.assertIsInstance(stream.wait(), imaplib.IMAP4.abort)

    def test_drain_unblocks_producer(self):
        messages = [(n, b"x") for n in range(1, 11)]
        connection = make_connection(fetch_data=fetch_response(messages))
        stream = FetchStream(
            make_session(connection), IdentifierSet("INBOX", range(1, 11)), queue_size=1
        ).start()

        first = next(iter(stream))
        stream.drain()

        self.assertEqual(first.seq, 1)
        self.assertIsNone(stream.wait())


class TestFetchAll(unittest.TestCase):
    """Tests for starting a fetch from located identifiers"""

    def test_builds_identifier_set_in_selected_folder(self):
        connection = make_connection(fetch_data=fetch_response([(2, b"b")]))
        session = make_session(connection)
        session.selected_folder = "Print"

        stream = fetch_all(session, [2, 4, 3])
        list(stream)
        stream.wait()

        self.assertEqual(stream.identifiers.folder, "Print")
        connection.fetch.assert_called_once_with("2:4", "(BODY.PEEK[])")


if __name__ == "__main__":
    unittest.main(verbosity=2)
