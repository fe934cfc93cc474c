"""swearmeter: profanity trend ingestion and aggregation."""
