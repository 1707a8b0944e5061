from __future__ import annotations

from conftest import FIXED_DAY, sha

from action_pinner.domain.entities import ResolutionErrorKind, ResolutionResult
from action_pinner.pinning.classifier import ReferenceClassifier
from action_pinner.pinning.patcher import UNRESOLVED_MARKER, PatchApplier, PatchOperation

HEADER = "jobs:\n  build:\n    steps:\n"


def _workflow(*steps: str, newline: str = "\n") -> str:
    lines = ["jobs:", "  build:", "    steps:", *(f"      - {step}" for step in steps)]
    return newline.join(lines) + newline


def _success(uses: str, commit_hash: str, resolved_ref: str | None = None) -> ResolutionResult:
    request = ReferenceClassifier().classify(uses).request
    assert request is not None
    return ResolutionResult(request=request, commit_hash=commit_hash, resolved_ref=resolved_ref or request.ref)


def _failure(uses: str, kind: ResolutionErrorKind) -> ResolutionResult:
    request = ReferenceClassifier().classify(uses).request
    assert request is not None
    return ResolutionResult(
        request=request, commit_hash=None, resolved_ref=request.ref, error_kind=kind, error="boom"
    )


def _apply(text: str, results: list[ResolutionResult], *, replace_all: bool = False, invocations=None):
    classifier = ReferenceClassifier()
    classifications = [classifier.classify(uses) for uses in (invocations or [r.request.key for r in results])]
    applier = PatchApplier(replace_all=replace_all, today=lambda: FIXED_DAY)
    return applier.apply(text, {result.request.key: result for result in results}, classifications)


def test_pinned_line_format():
    outcome = _apply(_workflow("uses: actions/checkout@v4"), [_success("actions/checkout@v4", sha("a"))])

    assert outcome.text == HEADER + f"      - uses: actions/checkout@{sha('a')} # v4 on 2024-05-17\n"
    assert outcome.changed is True
    assert outcome.pinned == 1


def test_resolved_ref_from_prefix_fallback_is_recorded():
    outcome = _apply(_workflow("uses: org/tool@v2"), [_success("org/tool@v2", sha("b"), resolved_ref="v2.1.0-beta")])

    assert outcome.text == HEADER + f"      - uses: org/tool@{sha('b')} # v2.1.0-beta on 2024-05-17\n"


def test_only_first_duplicate_is_rewritten_by_default():
    text = _workflow("uses: actions/checkout@v3", "uses: actions/checkout@v3")

    outcome = _apply(
        text,
        [_success("actions/checkout@v3", sha("c"))],
        invocations=["actions/checkout@v3", "actions/checkout@v3"],
    )

    lines = outcome.text.splitlines()
    assert lines[3] == f"      - uses: actions/checkout@{sha('c')} # v3 on 2024-05-17"
    assert lines[4] == "      - uses: actions/checkout@v3"
    assert outcome.pinned == 1


def test_replace_all_rewrites_every_duplicate():
    text = _workflow("uses: actions/checkout@v3", "uses: actions/checkout@v3")

    outcome = _apply(
        text,
        [_success("actions/checkout@v3", sha("c"))],
        replace_all=True,
        invocations=["actions/checkout@v3", "actions/checkout@v3"],
    )

    assert outcome.text.count(sha("c")) == 2
    assert outcome.pinned == 2


def test_shorter_invocation_does_not_match_longer_one():
    text = _workflow("uses: actions/checkout@v3.1", "uses: actions/checkout@v3")

    outcome = _apply(
        text,
        [_success("actions/checkout@v3", sha("d"))],
        invocations=["actions/checkout@v3.1", "actions/checkout@v3"],
    )

    lines = outcome.text.splitlines()
    assert lines[3] == "      - uses: actions/checkout@v3.1"
    assert lines[4].startswith(f"      - uses: actions/checkout@{sha('d')} ")


def test_quoted_values_keep_their_quotes():
    text = _workflow('uses: "actions/setup-node@v4"', "uses: 'actions/cache@v4'")

    outcome = _apply(
        text,
        [_success("actions/setup-node@v4", sha("e")), _success("actions/cache@v4", sha("f"))],
    )

    lines = outcome.text.splitlines()
    assert lines[3] == f"      - uses: \"actions/setup-node@{sha('e')}\" # v4 on 2024-05-17"
    assert lines[4] == f"      - uses: 'actions/cache@{sha('f')}' # v4 on 2024-05-17"


def test_existing_trailing_comment_is_preserved():
    outcome = _apply(_workflow("uses: actions/checkout@v4 # keep me"), [_success("actions/checkout@v4", sha("a"))])

    assert outcome.text == HEADER + f"      - uses: actions/checkout@{sha('a')} # v4 on 2024-05-17 # keep me\n"


def test_crlf_line_endings_are_preserved():
    text = _workflow("uses: actions/checkout@v4", "run: echo", newline="\r\n")

    outcome = _apply(text, [_success("actions/checkout@v4", sha("a"))])

    assert outcome.text == _workflow(
        f"uses: actions/checkout@{sha('a')} # v4 on 2024-05-17", "run: echo", newline="\r\n"
    )


def test_commented_out_step_is_never_rewritten():
    text = (
        HEADER
        + "      # - uses: actions/checkout@v3\n"
        + "      - uses: actions/checkout@v3\n"
    )

    outcome = _apply(text, [_success("actions/checkout@v3", sha("a"))])

    lines = outcome.text.splitlines()
    assert lines[3] == "      # - uses: actions/checkout@v3"
    assert lines[4] == f"      - uses: actions/checkout@{sha('a')} # v3 on 2024-05-17"
    assert outcome.pinned == 1


def test_run_script_mentioning_the_invocation_is_never_rewritten():
    text = (
        HEADER
        + "      - run: |\n"
        + "          echo uses: actions/checkout@v3\n"
        + "      - uses: actions/checkout@v3\n"
    )

    outcome = _apply(text, [_success("actions/checkout@v3", sha("a"))])

    lines = outcome.text.splitlines()
    assert lines[4] == "          echo uses: actions/checkout@v3"
    assert lines[5] == f"      - uses: actions/checkout@{sha('a')} # v3 on 2024-05-17"


def test_flow_mappings_and_non_step_keys_are_left_alone():
    text = (
        "jobs:\n"
        "  reusable:\n"
        "    uses: actions/checkout@v4\n"
        "  build:\n"
        "    steps:\n"
        "      - { uses: actions/checkout@v4 }\n"
        "      - my-uses: actions/checkout@v4\n"
    )

    outcome = _apply(text, [_success("actions/checkout@v4", sha("a"))])

    assert outcome.text == text
    assert outcome.pinned == 0
    assert outcome.changed is False


def test_unresolved_version_is_annotated_once():
    text = _workflow("uses: org/tool@v1.2.3")
    results = [_failure("org/tool@v1.2.3", ResolutionErrorKind.UNRESOLVED)]

    first = _apply(text, results)
    second = _apply(first.text, results)

    expected = HEADER + f"      - uses: org/tool@v1.2.3 # v1.2.3 on 2024-05-17, {UNRESOLVED_MARKER}\n"
    assert first.text == expected
    assert first.unresolved == 1
    assert first.pinned == 0
    assert second.text == expected
    assert second.changed is False


def test_annotated_duplicate_blocks_later_occurrences_on_rerun():
    text = _workflow("uses: org/tool@v1.2.3", "uses: org/tool@v1.2.3")
    results = [_failure("org/tool@v1.2.3", ResolutionErrorKind.UNRESOLVED)]
    invocations = ["org/tool@v1.2.3", "org/tool@v1.2.3"]

    first = _apply(text, results, invocations=invocations)
    second = _apply(first.text, results, invocations=invocations)

    assert first.text.count(UNRESOLVED_MARKER) == 1
    assert second.text == first.text


def test_not_found_and_missing_results_are_skipped():
    text = _workflow("uses: org/gone@v1", "uses: org/other@v2")
    classifier = ReferenceClassifier()
    classifications = [classifier.classify("org/gone@v1"), classifier.classify("org/other@v2")]
    results = {"org/gone@v1": _failure("org/gone@v1", ResolutionErrorKind.NOT_FOUND)}

    outcome = PatchApplier(today=lambda: FIXED_DAY).apply(text, results, classifications)

    assert outcome.text == text
    assert outcome.changed is False
    assert outcome.skipped == 2


def test_operation_accepts_only_whole_scalars_ending_their_line():
    operation = PatchOperation(invocation="a/b@v1", replacement="a/b@x", comment="# c")

    assert operation.accepts("a/b@v1", "") is True
    assert operation.accepts('"a/b@v1"', "  # note\r") is True
    assert operation.accepts("a/b@v1", " }") is False
    assert operation.accepts('"a/b@v1', "") is False
    assert operation.render("'a/b@v1'") == "'a/b@x' # c"


def test_build_operations_deduplicates_invocations():
    classifier = ReferenceClassifier()
    classifications = [classifier.classify("a/b@v1"), classifier.classify("a/b@v1")]
    results = {"a/b@v1": _success("a/b@v1", sha("1"))}

    operations, skipped = PatchApplier(today=lambda: FIXED_DAY).build_operations(results, classifications)

    assert len(operations) == 1
    assert skipped == 0
    assert operations[0].replacement == f"a/b@{sha('1')}"
    assert operations[0].comment == "# v1 on 2024-05-17"
