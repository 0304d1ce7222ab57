"""
Record Store Tests

Sanitisation, caps, copy isolation and backend behaviour.
"""

from datetime import timedelta

import pytest

from lifeos.contracts.base import UnknownRecordError
from lifeos.storage import (
    KEY_VISION_STATE, FileKeyValueBackend, InMemoryKeyValueBackend,
    RecordStore, StorageConfig, sanitize_vision_state,
)

from .fixtures import NOW, create_store, fixed_clock


class TestVisionRecord:

    def test_empty_store_reads_defaults(self):
        state = create_store().get_vision_state()

        assert state['milestones'] == []
        assert state['weeklyCommitmentIds'] == []
        assert set(state['targets'].values()) == {50}
        assert state['lastCompute'] is None

    def test_reads_are_deep_copies(self):
        store = create_store()
        store.add_milestone({'title': 'Ship'})

        state = store.get_vision_state()
        state['milestones'][0]['title'] = 'Edited'
        state['milestones'].clear()

        assert store.get_milestones()[0]['title'] == 'Ship'

    def test_corrupted_blob_reads_as_default(self):
        backend = InMemoryKeyValueBackend()
        backend.write_raw(KEY_VISION_STATE, '{not json')
        store = RecordStore(backend=backend, clock=fixed_clock())

        assert store.get_vision_state()['milestones'] == []

    def test_targets_are_clamped(self):
        store = create_store()
        targets = store.update_targets({'incomeStability': 140, 'creativeOutput': -5, 'bogus': 3})

        assert targets['incomeStability'] == 100
        assert targets['creativeOutput'] == 0
        assert 'bogus' not in targets

    def test_time_horizons_and_north_star(self):
        store = create_store()
        store.update_north_star('  Calm and creative  ')
        state = store.update_time_horizons('Go freelance', 'Own a studio')

        assert state['northStar'] == 'Calm and creative'
        assert state['oneYearDirection'] == 'Go freelance'
        assert state['fiveYearDirection'] == 'Own a studio'

    def test_reset(self):
        store = create_store()
        store.add_theme('Craft')
        assert store.reset_vision_state()['themes'] == []


class TestThemes:

    def test_duplicate_labels_ignored_case_insensitively(self):
        store = create_store()
        store.add_theme('Craft', 5)
        themes = store.add_theme('craft', 9)

        assert [t['label'] for t in themes] == ['Craft']
        assert themes[0]['weight'] == 5

    def test_weight_is_clamped(self):
        themes = create_store().add_theme('Health', 42)
        assert themes[0]['weight'] == 10

    def test_blank_label_is_ignored(self):
        assert create_store().add_theme('   ') == []

    def test_remove_theme(self):
        store = create_store()
        theme_id = store.add_theme('Craft')[0]['id']
        assert store.remove_theme(theme_id) == []


class TestMilestones:

    def test_add_sanitizes_record(self):
        store = create_store()
        record = store.add_milestone({
            'title': '  Launch site ',
            'completionPct': 150,
            'date': '2026-04-01T12:00:00Z',
            'unknownField': True,
        })

        assert record['title'] == 'Launch site'
        assert record['completionPct'] == 100
        assert record['status'] == 'done'
        assert record['nextAction'] == ''
        assert record['date'] == '2026-04-01'
        assert 'unknownField' not in record
        assert record['id'].startswith('ms-')

    def test_open_milestone_gets_placeholder_next_action(self):
        record = create_store().add_milestone({'title': 'Draft', 'completionPct': 10})
        assert record['status'] == 'active'
        assert record['nextAction'] == 'Define next action'

    def test_title_required(self):
        with pytest.raises(ValueError):
            create_store().add_milestone({'title': '   '})

    def test_duplicate_id_rejected(self):
        store = create_store()
        store.add_milestone({'id': 'ms-1', 'title': 'One'})
        with pytest.raises(ValueError):
            store.add_milestone({'id': 'ms-1', 'title': 'Again'})
        assert len(store.get_milestones()) == 1

    def test_generated_ids_are_unique(self):
        store = create_store()
        ids = {store.add_milestone({'title': f"M{i}"})['id'] for i in range(5)}
        assert len(ids) == 5

    def test_update_partial(self):
        clock = fixed_clock()
        store = create_store(clock)
        record = store.add_milestone({'title': 'Draft', 'completionPct': 10, 'blocker': 'x'})
        clock.advance(timedelta(hours=2))

        updated = store.update_milestone(record['id'], {'completionPct': 60, 'blocker': ''})

        assert updated['title'] == 'Draft'
        assert updated['completionPct'] == 60
        assert updated['blocker'] == ''
        assert updated['updatedAt'] == '2026-03-11T17:30:00.000Z'
        assert updated['createdAt'] == '2026-03-11T15:30:00.000Z'

    def test_completing_drops_commitment(self):
        store = create_store()
        record = store.add_milestone({'title': 'Draft', 'completionPct': 10})
        store.toggle_weekly_commitment(record['id'])

        store.update_milestone(record['id'], {'completionPct': 100})
        assert store.get_vision_state()['weeklyCommitmentIds'] == []

    def test_unknown_ids_raise(self):
        store = create_store()
        with pytest.raises(UnknownRecordError):
            store.update_milestone('missing', {'title': 'x'})
        with pytest.raises(UnknownRecordError):
            store.remove_milestone('missing')

    def test_get_milestone(self):
        store = create_store()
        record = store.add_milestone({'title': 'Draft'})
        assert store.get_milestone(record['id'])['title'] == 'Draft'
        assert store.get_milestone('missing') is None

    def test_remove_drops_commitment(self):
        store = create_store()
        record = store.add_milestone({'title': 'Draft', 'completionPct': 20})
        store.toggle_weekly_commitment(record['id'])

        assert store.remove_milestone(record['id']) == []
        assert store.get_vision_state()['weeklyCommitmentIds'] == []


class TestWeeklyCommitments:

    def test_toggle_on_and_off(self):
        store = create_store()
        record = store.add_milestone({'title': 'Draft', 'completionPct': 20})

        assert store.toggle_weekly_commitment(record['id']) == [record['id']]
        assert store.toggle_weekly_commitment(record['id']) == []

    def test_capped_at_limit(self):
        store = create_store()
        ids = [store.add_milestone({'title': f"M{i}", 'completionPct': 10})['id'] for i in range(4)]
        for milestone_id in ids:
            store.toggle_weekly_commitment(milestone_id)

        assert store.get_vision_state()['weeklyCommitmentIds'] == ids[:3]

    def test_done_and_unknown_ids_ignored(self):
        store = create_store()
        done = store.add_milestone({'title': 'Done', 'completionPct': 100})

        assert store.toggle_weekly_commitment(done['id']) == []
        assert store.toggle_weekly_commitment('missing') == []

    def test_saved_state_drops_invalid_commitments(self):
        store = create_store()
        state = store.save_vision_state({
            'milestones': [
                {'id': 'a', 'title': 'A', 'completionPct': 10},
                {'id': 'b', 'title': 'B', 'completionPct': 100},
            ],
            'weeklyCommitmentIds': ['a', 'a', 'b', 'ghost'],
        })
        assert state['weeklyCommitmentIds'] == ['a']


class TestDecisionLog:

    def test_log_decision_stamps_record(self):
        store = create_store()
        record = store.log_decision({'decision': 'no', 'note': 'Not now', 'alignmentAtDecision': 130})

        assert record['decision'] == 'no'
        assert record['createdAt'] == '2026-03-11T15:30:00.000Z'
        assert record['alignmentAtDecision'] == 100
        assert record['driftAtDecision'] == 0
        assert record['contextMode'] == 'vision'

    def test_unknown_outcome_counts_as_yes(self):
        assert create_store().log_decision({'decision': 'maybe'})['decision'] == 'yes'

    def test_log_is_capped(self):
        clock = fixed_clock()
        store = create_store(clock, decision_log_limit=3)
        for i in range(5):
            store.log_decision({'decision': 'yes', 'note': f"n{i}"})
            clock.advance(timedelta(minutes=1))

        assert [d['note'] for d in store.get_decision_log()] == ['n2', 'n3', 'n4']


class TestSnapshots:

    def test_save_appends_and_sets_last_compute(self):
        store = create_store()
        store.save_snapshot({'computedAt': '2026-03-11T10:00:00.000Z', 'alignment': {'overall': 40}})
        record = store.save_snapshot(
            {'computedAt': '2026-03-11T12:00:00.000Z', 'alignment': {'overall': 44}},
            metadata={'engineVersion': '2.0.0'},
        )

        assert len(store.get_snapshots()) == 2
        assert store.get_latest_snapshot() == record
        assert store.get_vision_state()['lastCompute']['metadata'] == {'engineVersion': '2.0.0'}

    def test_history_is_capped(self):
        store = create_store(snapshot_history_limit=2)
        for hour in range(4):
            store.save_snapshot({'computedAt': f"2026-03-11T1{hour}:00:00.000Z"})

        assert [s['computedAt'] for s in store.get_snapshots()] == [
            '2026-03-11T12:00:00.000Z', '2026-03-11T13:00:00.000Z',
        ]

    def test_saved_snapshot_is_isolated_from_caller(self):
        store = create_store()
        payload = {'computedAt': '2026-03-11T10:00:00.000Z', 'alignment': {'overall': 40}}
        store.save_snapshot(payload)
        payload['alignment']['overall'] = 99

        assert store.get_latest_snapshot()['alignment']['overall'] == 40


class TestSignals:

    def test_finance_round_trip(self):
        store = create_store()
        assert store.get_finance_snapshot() is None
        store.save_finance_snapshot({'runwayMonths': 3})
        assert store.get_finance_snapshot() == {'runwayMonths': 3}

    def test_habit_completion_rate(self):
        clock = fixed_clock()
        store = create_store(clock)
        assert store.get_habit_completion_rate() is None

        habits = store.save_habits([{'name': 'Walk'}, {'name': 'Read'}, {'name': ''}])
        assert len(habits) == 2
        assert store.get_habit_completion_rate() == 0

        assert store.toggle_habit(habits[0]['id']) is True
        assert store.get_habit_completion_rate() == 0.5
        assert store.toggle_habit(habits[0]['id']) is False

        store.toggle_habit(habits[1]['id'])
        clock.advance(timedelta(days=1))
        assert store.get_habit_completion_rate() == 0

    def test_unknown_habit_raises(self):
        with pytest.raises(UnknownRecordError):
            create_store().toggle_habit('missing')


class TestMaintenance:

    def test_seed_and_clear(self):
        store = create_store()
        state = store.seed_demo_data()

        assert [m['id'] for m in state['milestones']] == ['ms-demo-site', 'ms-demo-album', 'ms-demo-run']
        assert len(store.get_habits()) == 3

        store.clear_all()
        assert store.get_milestones() == []
        assert store.get_habits() == []


class TestSanitizer:

    def test_garbage_input(self):
        counter = iter(range(100))
        state = sanitize_vision_state(
            {'themes': ['Craft', None, {'label': 'craft'}], 'milestones': [None, 'x']},
            timestamp='2026-03-11T15:30:00.000Z',
            make_id=lambda prefix: f"{prefix}-{next(counter)}",
        )

        assert [t['label'] for t in state['themes']] == ['Craft']
        assert [m['title'] for m in state['milestones']] == ['New milestone', 'New milestone']


class TestFileBackend:

    def test_round_trip_and_keys(self, tmp_path):
        backend = FileKeyValueBackend(str(tmp_path))
        backend.write('visionModeState', {'a': 1})

        assert backend.read('visionModeState') == {'a': 1}
        assert backend.keys() == ['visionModeState']
        backend.delete('visionModeState')
        assert backend.read('visionModeState') is None

    def test_corrupted_file_reads_none(self, tmp_path):
        (tmp_path / 'finance.json').write_text('{oops', encoding='utf-8')
        assert FileKeyValueBackend(str(tmp_path)).read('finance') is None

    def test_store_persists_across_instances(self, tmp_path):
        config = StorageConfig(backend_type='file', storage_dir=str(tmp_path))
        RecordStore(config=config, clock=fixed_clock()).add_milestone({'title': 'Persisted'})

        reopened = RecordStore(config=config, clock=fixed_clock(NOW + timedelta(days=1)))
        assert reopened.get_milestones()[0]['title'] == 'Persisted'
