"""StudyWeave: retrieval-augmented study assistant with source-attributed answers."""
