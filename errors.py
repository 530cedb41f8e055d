# -*- coding: utf-8 -*-
"""
Exception types raised across the print pipeline.
"""


class MailPrinterError(Exception):
    """Base class for all pipeline errors"""


class StartupError(MailPrinterError):
    """Invalid settings, bad command line, or missing external tools"""


class SessionError(MailPrinterError):
    """Dialing, upgrading or authenticating against the mail store failed"""


class SearchError(MailPrinterError):
    """Selecting a folder or searching it failed"""


class RelocateError(MailPrinterError):
    """Moving messages into the destination folder failed"""


class FlagError(MailPrinterError):
    """Storing the seen flag failed"""


class ExtractError(MailPrinterError):
    """A print artifact could not be created or written"""
