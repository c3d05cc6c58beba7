"""Infrastructure layer for ProfileStub."""
