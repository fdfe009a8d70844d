from metrowatch.watch_map import describe_command


def test_describe_viewport_commands():
    assert describe_command({"type": "setView", "center": [14.5547, 121.0244], "zoom": 15}) == (
        "setView  (14.55470, 121.02440) zoom 15"
    )
    assert describe_command(
        {"type": "fitBounds", "bounds": [[14.5, 121.0], [14.7, 121.1]], "padding": [24, 24]}
    ) == "fitBounds (14.50000, 121.00000) - (14.70000, 121.10000)"
    assert describe_command({"type": "reports_changed", "version": 4}) == "reports changed (version 4)"
    assert describe_command({"type": "pong"}) == '{"type": "pong"}'
