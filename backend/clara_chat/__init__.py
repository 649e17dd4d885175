from .conversation import GREETINGS, ChatConversation, ConversationBusy
from .layout import SECTION_BUCKETS, Bucket, SectionLayout, assign_bucket, group_sections
from .models import STREAM_ERROR_MESSAGE, ChatMessage, DisplayGroup, ParsedSection, StreamSession
from .observers import ConversationObservers
from .sections import CLINICAL_SECTION_KEYS, EDUCATION_SECTION_KEYS, is_decoration_only, parse_sections
from .sessions import SESSION_HEADER, derive_session_name, extract_session_id
from .stream_reader import StreamAccumulator, StreamReader

__all__ = [
    "CLINICAL_SECTION_KEYS",
    "EDUCATION_SECTION_KEYS",
    "GREETINGS",
    "SECTION_BUCKETS",
    "SESSION_HEADER",
    "STREAM_ERROR_MESSAGE",
    "Bucket",
    "ChatConversation",
    "ChatMessage",
    "ConversationBusy",
    "ConversationObservers",
    "DisplayGroup",
    "ParsedSection",
    "SectionLayout",
    "StreamAccumulator",
    "StreamReader",
    "StreamSession",
    "assign_bucket",
    "derive_session_name",
    "extract_session_id",
    "group_sections",
    "is_decoration_only",
    "parse_sections",
]
