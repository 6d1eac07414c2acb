"""pod2read: turn long video transcripts into paced, structured readings."""

__version__ = "0.1.0"
