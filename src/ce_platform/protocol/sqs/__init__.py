"""Amazon SQS protocol binding."""

from ce_platform.protocol.sqs.message import SQSMessage, write_sqs_message
from ce_platform.protocol.sqs.protocol import SQSProtocol

__all__ = ["SQSMessage", "SQSProtocol", "write_sqs_message"]
