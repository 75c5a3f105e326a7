from lightswitch.frame import Frame, SymbolizationError


def test_symbolized_name():
    frame = Frame(0x10, None, ("main", False))
    assert str(frame) == "main"


def test_inlined_name():
    frame = Frame(0x10, None, ("helper", True))
    assert str(frame) == "[inlined] helper"


def test_not_symbolized():
    assert str(Frame(0x10)) == "frame not symbolized"


def test_with_error():
    frame = Frame.with_error(0x20, "<could not find mapping>")
    assert frame.virtual_address == 0x20
    assert frame.file_offset is None
    assert frame.symbolization_result == SymbolizationError("<could not find mapping>")
    assert str(frame) == 'error: Generic("<could not find mapping>")'


def test_error_display():
    err = SymbolizationError("<failed to symbolize>")
    assert str(err) == "Symbolization error <failed to symbolize>"


def test_frames_are_hashable_and_comparable():
    a = Frame.with_error(1, "x")
    b = Frame.with_error(1, "x")
    c = Frame.with_error(1, "y")
    assert a == b
    assert a != c
    assert len({a, b, c}) == 2


def test_default_frame():
    frame = Frame()
    assert frame.virtual_address == 0
    assert frame.symbolization_result is None
    assert frame == Frame(0, None, None)