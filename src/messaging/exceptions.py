"""Exceptions raised by the messaging core.

Domain rule violations keep using Protean's ``ValidationError``; these cover
the transport and transaction concerns that Protean has no vocabulary for.
"""


class MessagingError(Exception):
    """Base class for messaging failures."""


class TransactionRequired(MessagingError):
    """An outbox append was attempted outside an active unit of work."""


class UndecodableMessage(MessagingError):
    """A message could not be turned back into a known event.

    Raised for unknown type tags, malformed JSON and payloads that fail the
    event schema. Such messages are poison: they skip the retry chain.
    """

    def __init__(self, message, type_tag=None):
        super().__init__(message)
        self.type_tag = type_tag


class PublishError(MessagingError):
    """The broker did not acknowledge a publish."""
