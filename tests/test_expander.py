"""Tests for the expansion engine: timing, transforms, choice and control state."""

from collections import Counter
from fractions import Fraction

import pytest
from mtcfg.compiler import compile_grammar
from mtcfg.expander import Expander, PerformanceState, expand
from mtcfg.grammar.parser import parse_text, parse_body
from mtcfg.symbols import SymbolTable
from mtcfg.events import events_to_json, total_duration
from mtcfg.errors import (
    DurationUnderflow, InvalidOperatorArgument, ResourceLimitError,
)
from mtcfg.pitch import Pitch, Letter, Accidental


C4 = Pitch(4, Letter.C)
D4 = Pitch(4, Letter.D)
E4 = Pitch(4, Letter.E)
G4 = Pitch(4, Letter.G)


class ScriptedRng:
    """Stand-in generator returning pre-arranged choice indices."""

    def __init__(self, picks):
        self.picks = list(picks)
        self.calls = []

    def randrange(self, n):
        self.calls.append(n)
        return self.picks.pop(0)


def _timeline(events):
    return [(e.onset, e.duration, e.pitches) for e in events]


class TestSequencing:
    def test_onsets_accumulate(self):
        events = compile_grammar("start S\nS = :c :d<2> :e\n")
        assert _timeline(events) == [
            (0, 1, (C4,)), (1, 2, (D4,)), (3, 1, (E4,)),
        ]

    def test_rests_are_events(self):
        events = compile_grammar("start S\nS = :c :_ :d\n")
        assert [e.is_rest for e in events] == [False, True, False]
        assert events[1].onset == 1
        assert events[1].pitches == ()

    def test_chord_is_one_event(self):
        events = compile_grammar("start S\nS = Cmaj :d\nCmaj = :c :e :g\n")
        assert _timeline(events) == [(0, 1, (C4, E4, G4)), (1, 1, (D4,))]

    def test_empty_definition_lasts_zero(self):
        events = compile_grammar("start S\nS = Nothing :c\nNothing =\n")
        assert _timeline(events) == [(0, 1, (C4,))]

    def test_events_sorted_by_onset(self):
        events = compile_grammar("start S\nS = [x4][:c :_<1/3>]\n")
        onsets = [e.onset for e in events]
        assert onsets == sorted(onsets)
        assert total_duration(events) == Fraction(16, 3)


class TestRepeat:
    def test_repeat_deterministic_body(self):
        events = compile_grammar("start S\nS = [x3][:c :d]\n")
        assert [e.onset for e in events] == [0, 1, 2, 3, 4, 5]
        assert [e.pitches for e in events] == [(C4,), (D4,)] * 3

    def test_nested_repeat(self):
        events = compile_grammar("start S\nS = [x200][[x50][:c :d]]\n")
        assert len(events) == 20000
        assert events[-1].onset == 19999
        assert events[-1].pitches == (D4,)

    def test_repeat_equals_concatenation(self):
        # E = {:c | :d<2>}: the choices for each copy are drawn in order
        text = "start S\nS = [x3][E]\nE = {:c | :d<2>}\n"
        rng = ScriptedRng([0, 1, 1])
        events = compile_grammar(text, rng=rng)
        assert _timeline(events) == [
            (0, 1, (C4,)), (1, 2, (D4,)), (3, 2, (D4,)),
        ]
        assert rng.calls == [2, 2, 2]

    def test_repeat_carries_state_between_copies(self):
        events = compile_grammar("start S\nS = [x2][:c ::i=piano]\n")
        assert [e.instrument for e in events] == ["sine", "piano"]

    def test_settled_controls_are_copied(self):
        events = compile_grammar("start S\nS = [x20000000][::v=5] :c\n")
        assert _timeline(events) == [(0, 1, (C4,))]
        assert events[0].velocity == 5

    def test_controls_settle_after_one_pass(self):
        events = compile_grammar("start S\nS = [x100000][:c ::i=piano]\n",
                                 max_steps=100)
        assert len(events) == 100000
        assert [e.instrument for e in events[:3]] == ["sine", "piano", "piano"]
        assert events[-1].onset == 99999
        assert events[-1].instrument == "piano"

    def test_settled_body_leaves_its_state(self):
        events = compile_grammar(
            "start S\nS = [x3][::i=organ :c<1/2> ::v=80] :d\n")
        assert [(e.onset, e.velocity) for e in events] == [
            (0, 64), (Fraction(1, 2), 80), (1, 80), (Fraction(3, 2), 80),
        ]
        assert {e.instrument for e in events} == {"organ"}

    def test_repeat_count_one(self):
        events = compile_grammar("start S\nS = [x1][:c]\n")
        assert _timeline(events) == [(0, 1, (C4,))]


class TestTimeScale:
    def test_scale_shrinks(self):
        events = compile_grammar("start S\nS = [>>2][:c :d] :e\n")
        assert _timeline(events) == [
            (0, Fraction(1, 2), (C4,)),
            (Fraction(1, 2), Fraction(1, 2), (D4,)),
            (1, 1, (E4,)),
        ]

    def test_slow_down(self):
        events = compile_grammar("start S\nS = [>>1/2][:c]\n")
        assert events[0].duration == 2

    def test_nested_scales_multiply(self):
        nested = compile_grammar("start S\nS = [>>2][[>>3][:c :d<2>]]\n")
        flat = compile_grammar("start S\nS = [>>6][:c :d<2>]\n")
        assert _timeline(nested) == _timeline(flat)
        assert nested[1].duration == Fraction(1, 3)

    def test_scale_reaches_through_references(self):
        events = compile_grammar("start S\nS = [>>4][A]\nA = :c<2>\n")
        assert events[0].duration == Fraction(1, 2)


class TestTranspose:
    def test_b_up_three(self):
        events = compile_grammar("start S\nS = [T3][:b]\n")
        assert events[0].pitches == (Pitch(5, Letter.D),)

    def test_nested_transposes_add(self):
        nested = compile_grammar("start S\nS = [T5][[T-2][:c :e]]\n")
        flat = compile_grammar("start S\nS = [T3][:c :e]\n")
        assert _timeline(nested) == _timeline(flat)
        assert nested[0].pitches == (Pitch(4, Letter.D, Accidental.SHARP),)

    def test_transpose_chord(self):
        events = compile_grammar("start S\nS = [T-12][Cmaj]\nCmaj = :c :e :g\n")
        assert events[0].pitches == (
            Pitch(3, Letter.C), Pitch(3, Letter.E), Pitch(3, Letter.G),
        )

    def test_rests_untouched(self):
        events = compile_grammar("start S\nS = [T7][:_]\n")
        assert events[0].is_rest


class TestChoice:
    def test_scripted_scenario(self):
        text = "start S\nS = [x2][{ :c<2> | :_ :d }]\n"
        rng = ScriptedRng([0, 0])
        events = compile_grammar(text, rng=rng)
        assert _timeline(events) == [(0, 2, (C4,)), (2, 2, (C4,))]
        assert total_duration(events) == 4
        assert rng.calls == [2, 2]

    def test_scripted_scenario_other_branch(self):
        text = "start S\nS = [x2][{ :c<2> | :_ :d }]\n"
        events = compile_grammar(text, rng=ScriptedRng([1, 0]))
        assert _timeline(events) == [
            (0, 1, ()), (1, 1, (D4,)), (2, 2, (C4,)),
        ]

    def test_exactly_one_alternative(self):
        text = ("start S\nS = [x10000][{A | B | C}]\n"
                "A = :c\nB = :d\nC = :e\n")
        events = compile_grammar(text, seed=1)
        assert len(events) == 10000
        counts = Counter(e.pitches for e in events)
        assert set(counts) == {(C4,), (D4,), (E4,)}
        for n in counts.values():
            assert abs(n / 10000 - 1 / 3) < 0.03

    def test_same_seed_same_events(self):
        text = "start S\nS = [x32][{:c | :d<1/2> | :_ | [T7][:e]}]\n"
        a = compile_grammar(text, seed=42)
        b = compile_grammar(text, seed=42)
        assert events_to_json(a) == events_to_json(b)

    def test_default_seed_is_fixed(self):
        text = "start S\nS = [x32][{:c | :d}]\n"
        assert compile_grammar(text) == compile_grammar(text, seed=0)

    def test_alias_transparency(self):
        text = "start S\nS = X\nX = Y\nY = [x8][{:c | :d :e | :_}]\n"
        for seed in range(20):
            assert (compile_grammar(text, "X", seed=seed)
                    == compile_grammar(text, "Y", seed=seed))

    def test_recursion_with_exit(self):
        text = "start A\nA = {:c | :d A}\n"
        for seed in range(10):
            events = compile_grammar(text, seed=seed)
            assert events[-1].pitches == (C4,)
            assert all(e.pitches == (D4,) for e in events[:-1])


class TestControlState:
    def test_defaults(self):
        events = compile_grammar("start S\nS = :c\n")
        assert events[0].instrument == "sine"
        assert events[0].velocity == 64

    def test_controls_apply_forward(self):
        events = compile_grammar("start S\nS = :c ::i=piano ::v=100 :d\n")
        assert [(e.instrument, e.velocity) for e in events] == [
            ("sine", 64), ("piano", 100),
        ]

    def test_controls_reach_nested_terms(self):
        events = compile_grammar("start S\nS = ::i=organ [x2][[T2][:c]]\n")
        assert [e.instrument for e in events] == ["organ", "organ"]

    def test_controls_flow_out_of_references(self):
        events = compile_grammar("start S\nS = Piano :c\nPiano = ::i=piano\n")
        assert events[0].instrument == "piano"

    def test_alternative_sees_state_at_choice(self):
        text = "start S\nS = ::v=10 {::v=99 :c | :d}\n"
        events = compile_grammar(text, rng=ScriptedRng([1]))
        assert events[0].velocity == 10

    def test_rests_carry_state(self):
        events = compile_grammar("start S\nS = ::i=bass :_\n")
        assert events[0].instrument == "bass"

    def test_initial_state(self):
        state = PerformanceState(instrument="flute", velocity=30)
        events = compile_grammar("start S\nS = :c\n", initial_state=state)
        assert (events[0].instrument, events[0].velocity) == ("flute", 30)

    def test_end_state(self):
        table = SymbolTable.from_grammar(parse_text("start S\nS = :c\n"))
        result = Expander(table).expand(parse_body("::i=piano :c ::v=5"))
        assert result.end_state == PerformanceState("piano", 5)
        assert result.duration == 1


class TestExpansionErrors:
    def _table(self, text):
        return SymbolTable.from_grammar(parse_text(text))

    def test_zero_repeat(self):
        with pytest.raises(InvalidOperatorArgument) as exc:
            compile_grammar("start S\nS = [x0][:c]\n")
        assert exc.value.operator == "x"
        assert exc.value.exit_code == 5

    def test_negative_repeat(self):
        with pytest.raises(InvalidOperatorArgument):
            compile_grammar("start S\nS = [x-1][:c]\n")

    def test_zero_rate(self):
        with pytest.raises(InvalidOperatorArgument) as exc:
            compile_grammar("start S\nS = [>>0][:c]\n")
        assert exc.value.operator == ">>"

    def test_negative_rate(self):
        with pytest.raises(InvalidOperatorArgument):
            compile_grammar("start S\nS = [>>-2][:c]\n")

    def test_fractional_transpose(self):
        with pytest.raises(InvalidOperatorArgument) as exc:
            compile_grammar("start S\nS = [T1/2][:c]\n")
        assert exc.value.operator == "T"
        assert exc.value.line == 2

    def test_zero_duration(self):
        with pytest.raises(DurationUnderflow):
            compile_grammar("start S\nS = :c<0>\n")

    def test_error_chain(self):
        with pytest.raises(InvalidOperatorArgument) as exc:
            compile_grammar("start S\nS = A\nA = :c [x0][:d]\n")
        assert exc.value.chain == ("S", "A")

    def test_max_depth(self):
        lines = ["start A0"]
        lines += [f"A{i} = A{i + 1}" for i in range(49)]
        lines.append("A49 = :c")
        with pytest.raises(ResourceLimitError) as exc:
            compile_grammar("\n".join(lines), max_depth=10)
        assert exc.value.exit_code == 4

    def test_max_events_replicated(self):
        with pytest.raises(ResourceLimitError):
            compile_grammar("start S\nS = [x100][:c]\n", max_events=50)

    def test_max_events_drawn(self):
        with pytest.raises(ResourceLimitError):
            compile_grammar("start S\nS = [x100][{:c | :d}]\n", max_events=50)

    def test_max_steps(self):
        with pytest.raises(ResourceLimitError):
            compile_grammar("start S\nS = [x100][{:c | :d}]\n", max_steps=20)

    def test_within_limits(self):
        events = compile_grammar("start S\nS = [x50][:c]\n", max_events=50)
        assert len(events) == 50

    def test_expand_convenience(self):
        table = self._table("start S\nS = :c :_\n")
        result = expand(table, parse_body("[x2][S]"))
        assert len(result.events) == 4
        assert result.duration == 4
