"""
Built-in Producer Tests

Vision, alignment, time, narrative and system layers wired through a StateContext.
"""

from datetime import timedelta

import pytest

from lifeos.contracts.records import DIMENSION_KEYS
from lifeos.producers import register_default_producers
from lifeos.producers.narrative_layer import (
    build_themes, chapter_label, compact_summary, pick_trajectory,
)
from lifeos.producers.system_state import (
    map_cognitive_risk, overall_risk, pick_constraint, pick_direction, pick_system_mode,
)
from lifeos.producers.time_layer import (
    classify_phase, classify_trend, daily_series, stress_reading, window_slope,
)
from lifeos.producers.vision_layer import alignment_mode
from lifeos.reactive import LAYER_NAMES, StateContext, default_for

from .fixtures import NOW, create_context, create_store, fixed_clock, snapshot_record


def _defaults(**overrides):
    layers = {name: default_for(name) for name in LAYER_NAMES}
    layers.update(overrides)
    return layers


def _wired_context():
    context = create_context()
    register_default_producers(context)
    return context


def _complete_plan(store):
    types = ['Income', 'Creation', 'Health', 'Relationships', 'Meaning']
    store.update_targets({key: 100 for key in DIMENSION_KEYS})
    for vision_type in types:
        store.add_milestone({'title': vision_type, 'visionType': vision_type, 'completionPct': 100})


class TestVisionLayer:

    def test_vision_layer_is_snapshot_mapping(self):
        state = _wired_context().get_vision_state()

        assert state['computedAt'] == '2026-03-11T15:30:00.000Z'
        assert state['alignment']['overall'] == 20
        assert len(state['suggestedCommitments']) == 3

    def test_vision_layer_follows_mutations(self):
        context = _wired_context()
        before = context.get_vision_state()['alignment']['incomeStability']

        context.store.update_targets({'incomeStability': 100})
        assert context.get_vision_state()['alignment']['incomeStability'] == before + 20

    def test_finance_signal_reaches_engine(self):
        context = _wired_context()
        context.store.save_finance_snapshot({'runwayMonths': 1})

        flags = [f['id'] for f in context.get_vision_state()['tensionFlags']]
        assert 'tension-income-instability' in flags


class TestAlignmentLayer:

    def test_empty_plan(self):
        assert _wired_context().get_alignment_state() == {
            'score': 0.2,
            'mode': 'OVERLOAD',
            'milestoneRatio': 0.0,
            'decisionRatio': 0.55,
            'habitRatio': 0.55,
        }

    def test_complete_plan_is_aligned(self):
        context = _wired_context()
        _complete_plan(context.store)

        state = context.get_alignment_state()
        assert state['score'] == 1.0
        assert state['mode'] == 'ALIGNED'

    def test_runway_pressure_means_survival(self):
        context = _wired_context()
        _complete_plan(context.store)
        context.store.save_finance_snapshot({'runwayMonths': 1})

        assert context.get_alignment_state()['mode'] == 'SURVIVAL'

    @pytest.mark.parametrize("score, flags, expected", [
        (0.9, ['tension-income-instability', 'tension-burnout'], 'SURVIVAL'),
        (0.9, ['tension-overextension'], 'OVERLOAD'),
        (0.65, [], 'ALIGNED'),
        (0.64, ['tension-blocked-milestones'], 'DRIFT'),
    ])
    def test_mode_precedence(self, score, flags, expected):
        assert alignment_mode(score, flags) == expected


class TestSystemLayer:

    def test_composed_from_wired_siblings(self):
        assert _wired_context().get_system_state() == {
            'systemMode': 'RECOVER',
            'dominantConstraint': 'ENERGY',
            'overallRisk': 0.479,
            'lifeDirection': 'FLAT',
        }

    def test_system_state_from_with_default_producers(self):
        store = create_store()
        context = StateContext.with_default_producers(store, clock=fixed_clock())
        assert context.get_system_state()['systemMode'] == 'RECOVER'

    def test_cognitive_overrides_win(self):
        cognitive = default_for('cognitive')
        cognitive['states'].update(systemMode='FLOW', primaryConstraint='time')
        layers = _defaults(cognitive=cognitive)

        assert pick_system_mode(layers) == 'FLOW'
        assert pick_constraint(layers) == 'TIME'

    def test_high_stress_means_recover(self):
        derived = default_for('derived')
        derived['signals']['stress'] = 0.85
        assert pick_system_mode(_defaults(derived=derived)) == 'RECOVER'

    @pytest.mark.parametrize("phase, expected", [
        ('RECOVER', 'RECOVER'), ('BUILD', 'BUILD'), ('HARVEST', 'FLOW'), ('EXPLORE', 'EXPLORE'),
    ])
    def test_time_phase_maps_to_mode(self, phase, expected):
        time_state = dict(default_for('time'), phase=phase)
        assert pick_system_mode(_defaults(time=time_state)) == expected

    def test_largest_deficit_wins(self):
        derived = default_for('derived')
        derived['metrics'].update(healthScore=0.9, rhythmScore=0.8, financeScore=0.2)
        assert pick_constraint(_defaults(derived=derived)) == 'MONEY'

    def test_survival_boosts_money(self):
        derived = default_for('derived')
        derived['metrics'].update(healthScore=0.9, rhythmScore=0.9, financeScore=0.55)
        alignment = dict(default_for('alignment'), mode='SURVIVAL')

        assert pick_constraint(_defaults(derived=derived)) == 'CLARITY'
        assert pick_constraint(_defaults(derived=derived, alignment=alignment)) == 'MONEY'

    def test_missing_readings_count_as_zero(self):
        layers = {name: {} for name in LAYER_NAMES}
        # only the LOW cognitive floor and the ALIGNED alignment floor remain
        assert overall_risk(layers) == round(0.22 * 0.28 + 0.2 * 0.1, 3)
        assert pick_constraint(layers) == 'ENERGY'

    @pytest.mark.parametrize("level, expected", [
        ('HIGH', 0.82), ('medium', 0.52), ('LOW', 0.22), (None, 0.22),
    ])
    def test_cognitive_risk_mapping(self, level, expected):
        assert map_cognitive_risk(level) == expected

    @pytest.mark.parametrize("trend, trajectory, expected", [
        ('UP', 'STABLE', 'UP'),
        ('FLAT', 'RISING', 'UP'),
        ('DOWN', 'STABLE', 'DOWN'),
        ('FLAT', 'FALLING', 'DOWN'),
        ('FLAT', 'STABLE', 'FLAT'),
    ])
    def test_direction(self, trend, trajectory, expected):
        layers = _defaults(
            time=dict(default_for('time'), trend=trend),
            narrative=dict(default_for('narrative'), trajectory=trajectory),
        )
        assert pick_direction(layers) == expected


def _rising_context():
    context = _wired_context()
    for days_ago in (3, 2, 1):
        context.store.save_snapshot(snapshot_record(NOW - timedelta(days=days_ago), 10))
    _complete_plan(context.store)
    return context


class TestTimeLayer:

    def test_empty_plan(self):
        assert _wired_context().get_time_state() == {
            'phase': 'RECOVER',
            'momentum30': 0.0,
            'momentum90': 0.0,
            'momentum365': 0.0,
            'burnoutRisk': 0.29,
            'trend': 'FLAT',
        }

    def test_rising_history_is_harvest(self):
        state = _rising_context().get_time_state()

        assert state['momentum30'] == 0.381
        assert state['momentum90'] == 0.381
        assert state['momentum365'] == 0.381
        assert state['trend'] == 'UP'
        assert state['burnoutRisk'] == 0.29
        assert state['phase'] == 'HARVEST'

    def test_time_layer_follows_snapshot_writes(self):
        context = _wired_context()
        _complete_plan(context.store)
        assert context.get_time_state()['trend'] == 'FLAT'

        for days_ago in (3, 2, 1):
            context.store.save_snapshot(snapshot_record(NOW - timedelta(days=days_ago), 10))
        assert context.get_time_state()['trend'] == 'UP'

    def test_last_snapshot_of_a_day_wins(self):
        earlier = snapshot_record(NOW - timedelta(days=1, hours=2), 10)
        later = snapshot_record(NOW - timedelta(days=1), 70)
        current = snapshot_record(NOW, 40)

        series = daily_series([earlier, later, {'computedAt': 'not a date'}], current, 0.5)
        assert [point['lifePulse'] for point in series] == [70, 40]
        assert [point['date'] for point in series] == ['2026-03-10', '2026-03-11']

    def test_stress_falls_back_to_metrics(self):
        assert stress_reading({'signals': {'stress': 0.9}}) == 0.9
        assert stress_reading({'signals': {}, 'metrics': {'stressScore': 0.3}}) == 0.3
        assert stress_reading(None) == 0

    @pytest.mark.parametrize("values, expected", [
        ([], 0.0),
        ([0.2, 0.5], 0.3),
        ([0.1, 0.1, 0.5, 0.5], 0.4),
        ([0.0, 0.0, 0.0, 3.0], 1),
    ])
    def test_window_slope(self, values, expected):
        assert window_slope(values) == pytest.approx(expected)

    @pytest.mark.parametrize("m30, m90, expected", [
        (0.1, 0.05, 'UP'),
        (-0.1, -0.05, 'DOWN'),
        (0.1, -0.1, 'FLAT'),
    ])
    def test_trend(self, m30, m90, expected):
        assert classify_trend(m30, m90) == expected

    @pytest.mark.parametrize("burnout, m30, m90, finance, pulse, expected", [
        (0.72, 0.5, 0.5, 1.0, 90, 'RECOVER'),
        (0.3, 0.24, 0.0, 0.62, 90, 'HARVEST'),
        (0.3, 0.24, 0.0, 0.5, 90, 'BUILD'),
        (0.3, 0.07, 0.0, 0.5, 60, 'BUILD'),
        (0.3, -0.14, 0.0, 0.5, 60, 'RECOVER'),
        (0.3, 0.0, 0.0, 0.5, 42, 'RECOVER'),
        (0.3, 0.0, 0.0, 0.5, 50, 'EXPLORE'),
    ])
    def test_phase(self, burnout, m30, m90, finance, pulse, expected):
        assert classify_phase(burnout, m30, m90, finance, pulse) == expected


class TestNarrativeLayer:

    def test_empty_plan(self):
        assert _wired_context().get_narrative_state() == {
            'chapterLabel': 'Reset and Reframe',
            'trajectory': 'TURNING',
            'keyThemes': ['recovery'],
            'summary': 'Reset and Reframe: Momentum is stable. Alignment needs correction.',
        }

    def test_rising_history(self):
        context = _rising_context()

        assert context.get_narrative_state() == {
            'chapterLabel': 'Harvest Window',
            'trajectory': 'RISING',
            'keyThemes': ['alignment'],
            'summary': 'Harvest Window: Momentum is improving. Work remains aligned with North Star.',
        }
        system = context.get_system_state()
        assert system['systemMode'] == 'FLOW'
        assert system['lifeDirection'] == 'UP'

    @pytest.mark.parametrize("trend, mode, stress, expected", [
        ('UP', 'ALIGNED', 0.9, 'RISING'),
        ('DOWN', 'ALIGNED', 0.62, 'FALLING'),
        ('DOWN', 'DRIFT', 0.61, 'STABLE'),
        ('FLAT', 'SURVIVAL', 0.1, 'TURNING'),
        ('FLAT', 'DRIFT', 0.1, 'STABLE'),
    ])
    def test_trajectory(self, trend, mode, stress, expected):
        assert pick_trajectory({'trend': trend}, {'mode': mode}, stress) == expected

    @pytest.mark.parametrize("phase, trajectory, expected", [
        ('RECOVER', 'TURNING', 'Reset and Reframe'),
        ('RECOVER', 'STABLE', 'Recovery Arc'),
        ('BUILD', 'RISING', 'Compounding Build'),
        ('BUILD', 'STABLE', 'Exploration Season'),
        ('HARVEST', 'FALLING', 'Harvest Window'),
        ('EXPLORE', 'FALLING', 'Stabilization Needed'),
        (None, 'STABLE', 'Exploration Season'),
    ])
    def test_chapter(self, phase, trajectory, expected):
        assert chapter_label({'phase': phase}, trajectory) == expected

    def test_themes_follow_layers(self):
        themes = build_themes(
            {'phase': 'BUILD'},
            {'mode': 'SURVIVAL'},
            {'leakSource': 'CONTEXT'},
            {'neglectedCount': 2},
        )
        assert themes == ['building', 'stability', 'focus integrity', 'connection repair']

        themes = build_themes(
            {'phase': 'RECOVER'},
            {'mode': 'ALIGNED'},
            {'leakSource': 'STIMULUS'},
            {'neglectedCount': 1},
        )
        assert themes == ['recovery', 'alignment', 'stimulus hygiene', 'connection repair']
        assert build_themes({}, {}, {}, {'neglectedCount': 'none'}) == []

    def test_summary_is_compacted(self):
        assert compact_summary('  a \n\n b\tc ') == 'a b c'
        long_text = 'word ' * 60
        summary = compact_summary(long_text)
        assert len(summary) <= 200
        assert summary.endswith('...')
