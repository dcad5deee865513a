"""tvmatcher - identify TV episodes in unlabeled MKV files by their subtitles."""

__version__ = "0.1.0"
