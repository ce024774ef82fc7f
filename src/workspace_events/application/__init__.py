"""Use cases on top of the pipeline: publishing, querying, reactors."""
