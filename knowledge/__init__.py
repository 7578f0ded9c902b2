"""Page text extraction and the inverted index writer."""
