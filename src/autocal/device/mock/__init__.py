from .mock_card import MockA2DCard, MockCardChannel

__all__ = ["MockA2DCard", "MockCardChannel"]
