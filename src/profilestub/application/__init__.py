"""Application layer for ProfileStub."""
