from agentic_workflows.workflow import expressions


def test_and_groups_only_mixed_operators():
    assert expressions.and_("a", "b || c", "d && e") == "a && (b || c) && d && e"


def test_or_groups_only_mixed_operators():
    assert expressions.or_("a", "b && c", "d || e") == "a || (b && c) || d || e"


def test_empty_parts_are_dropped():
    assert expressions.and_("", "a", "  ") == "a"
    assert expressions.or_() == ""


def test_wrapped_parts_are_unwrapped():
    assert expressions.and_("${{ a }}", "b") == "a && b"
    assert expressions.wrap(" x == 'y' ") == "${{ x == 'y' }}"


def test_safe_output_condition():
    assert expressions.safe_output_condition("agent", "add_comment") == (
        "!cancelled() && needs.agent.result != 'skipped' && "
        "contains(needs.agent.outputs.output_types, 'add_comment')"
    )


def test_activated_condition():
    assert expressions.activated_condition("pre_activation") == (
        "needs.pre_activation.outputs.activated == 'true'"
    )
