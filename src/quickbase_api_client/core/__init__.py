"""Transport, wire codec and error layers."""

__all__: list[str] = []
