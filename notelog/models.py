from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, JSON
from datetime import datetime, timezone
from notelog.database import Base, SettingsBase


def _utc_now_naive() -> datetime:
    """Naive UTC datetime for DB (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LogEntry(Base):
    """One learned item per unique target text (uniqueness enforced by lookup, not by the schema)."""
    __tablename__ = "log_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_text = Column(Text, nullable=False, index=True)
    native_text = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    example_sentence = Column(Text, nullable=True)

    # Writing-system detail
    character_form = Column(Text, nullable=True)  # primary script, e.g. 交わる
    reading_form = Column(Text, nullable=True)  # phonetic script, e.g. まじわる
    romanization = Column(Text, nullable=True)  # e.g. majiwaru
    writing_system_note = Column(Text, nullable=True)  # e.g. "Kanji+Okurigana"
    script_annotations = Column(JSON, nullable=True)  # [{"base_char", "annotation", "annotation_type"}]

    created_at = Column(DateTime, default=_utc_now_naive, nullable=False)
    updated_at = Column(DateTime, default=_utc_now_naive, onupdate=_utc_now_naive, nullable=False)


class SourceNoteProcessed(Base):
    """Provenance: one row per processed note file."""
    __tablename__ = "source_notes_processed"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_file = Column(Text, nullable=True)
    source_line_ref = Column(Text, nullable=True)
    date_context = Column(String(20), nullable=True)  # YYYY-MM-DD
    original_snippet = Column(Text, nullable=True)  # truncated preview of the file text
    log_entry_id = Column(Integer, ForeignKey("log_entries.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=_utc_now_naive, nullable=False)


class ReviewItem(Base):
    """Human-triage queue entry."""
    __tablename__ = "review_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_type = Column(String(20), nullable=False)  # duplicate, uncategorized, parsing_assist
    status = Column(String(20), default="pending", nullable=False)  # pending, resolved, ignored
    target_text = Column(Text, nullable=True)
    native_text = Column(Text, nullable=True)
    original_snippet = Column(Text, nullable=True)
    ai_suggestion = Column(Text, nullable=True)
    category_guess = Column(String(100), nullable=True)
    ai_extracted_character_form = Column(Text, nullable=True)
    ai_extracted_reading_form = Column(Text, nullable=True)
    ai_extracted_romanization = Column(Text, nullable=True)
    ai_extracted_writing_system_note = Column(Text, nullable=True)
    source_note_processed_id = Column(
        Integer, ForeignKey("source_notes_processed.id", ondelete="SET NULL"), nullable=True
    )
    related_log_entry_id = Column(Integer, ForeignKey("log_entries.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=_utc_now_naive, nullable=False)
    resolved_at = Column(DateTime, nullable=True)


class Setting(SettingsBase):
    """Global key/value settings (lives in the settings database, not a language database)."""
    __tablename__ = "settings"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=True)
