"""
Index tracking module for the RAG pipeline.

Tracks which notes have been indexed and a hash of the content they were
indexed from, so unchanged notes are not re-embedded.
"""

import hashlib
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """SHA-256 of note text with surrounding whitespace removed."""
    return hashlib.sha256(text.strip().encode('utf-8')).hexdigest()


class IndexTracker:
    """
    Tracks indexed notes and the content hash they were indexed from.

    Stores metadata in a JSON file to persist across sessions.
    """

    def __init__(self, tracker_file: Path):
        """
        Initialize index tracker.

        Args:
            tracker_file: Path to JSON file for storing tracking data
        """
        self.tracker_file = Path(tracker_file)
        self._index: Dict[str, Dict] = {}
        self._lock = threading.Lock()
        self._load_index()

    def _load_index(self) -> None:
        """Load index from JSON file."""
        if self.tracker_file.exists():
            try:
                with open(self.tracker_file, 'r', encoding='utf-8') as f:
                    self._index = json.load(f)
                logger.debug(f"Loaded index tracker: {len(self._index)} entries")
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Failed to load index tracker: {e}. Starting fresh.")
                self._index = {}
        else:
            logger.debug("Index tracker file does not exist. Starting fresh.")
            self._index = {}

    def _save_index(self) -> None:
        """Save index to JSON file."""
        try:
            self.tracker_file.parent.mkdir(parents=True, exist_ok=True)

            # Write atomically (write to temp file, then rename)
            temp_file = self.tracker_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self._index, f, indent=2)

            temp_file.replace(self.tracker_file)
            logger.debug(f"Saved index tracker: {len(self._index)} entries")
        except IOError as e:
            logger.error(f"Failed to save index tracker: {e}")

    def mark_indexed(
        self,
        note_id: str,
        text: str,
        chunks_created: int = 0,
        generation: int = 0,
    ) -> None:
        """
        Mark a note as indexed from the given content.

        Args:
            note_id: Note identifier
            text: Note content that was indexed
            chunks_created: Number of chunks stored for this note
            generation: Indexing generation that produced the chunks
        """
        entry = {
            'note_id': note_id,
            'content_hash': content_hash(text),
            'indexed_at': datetime.now().isoformat(),
            'chunks_created': chunks_created,
            'generation': generation,
        }

        with self._lock:
            self._index[note_id] = entry
            self._save_index()

        logger.info(f"Marked {note_id} as indexed ({chunks_created} chunks)")

    def needs_reindex(self, note_id: str, text: str) -> bool:
        """
        Check if a note needs (re-)indexing.

        Args:
            note_id: Note identifier
            text: Current note content

        Returns:
            True if the note is not indexed or its content changed
        """
        entry = self._index.get(note_id)
        if entry is None:
            return True
        return entry.get('content_hash') != content_hash(text)

    def is_indexed(self, note_id: str) -> bool:
        return note_id in self._index

    def get_indexed_notes(self) -> Set[str]:
        """
        Get set of all indexed note IDs.

        Returns:
            Set of note IDs
        """
        return set(self._index.keys())

    def remove_entry(self, note_id: str) -> bool:
        """
        Remove an index entry.

        Args:
            note_id: Note identifier

        Returns:
            True if entry was removed
        """
        with self._lock:
            if note_id not in self._index:
                return False
            del self._index[note_id]
            self._save_index()

        logger.info(f"Removed index entry: {note_id}")
        return True

    def get_entry(self, note_id: str) -> Optional[Dict]:
        return self._index.get(note_id)

    def get_stats(self) -> Dict:
        """
        Get statistics about the index.

        Returns:
            Dictionary with statistics
        """
        total_entries = len(self._index)
        total_chunks = sum(
            entry.get('chunks_created', 0)
            for entry in self._index.values()
        )

        return {
            'total_notes_indexed': total_entries,
            'total_chunks_created': total_chunks,
            'tracker_file': str(self.tracker_file),
            'tracker_exists': self.tracker_file.exists(),
        }

    def clear(self) -> None:
        """Clear all index entries."""
        with self._lock:
            self._index = {}
            self._save_index()
        logger.info("Cleared all index entries")
