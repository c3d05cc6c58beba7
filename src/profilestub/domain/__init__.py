"""Domain layer for ProfileStub."""
