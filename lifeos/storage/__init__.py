"""
Record Storage Layer

RESPONSIBILITY: Key -> JSON blob persistence and the record accessors
ALLOWED INPUTS: Plain mappings from callers
OUTPUTS: Sanitised deep copies of stored records

WHAT THIS LAYER MUST NOT DO:
============================
- Compute derived views
- Invalidate caches or notify observers (the interceptor does that)
- Hand out references to its internal state

BOUNDARY ENFORCEMENT:
=====================
- Every read returns a deep copy
- Snapshot history is append-only (oldest entries age out past the
  configured limit; stored entries are never edited)
- Unparseable blobs read back as the caller's fallback
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional
import copy
import hashlib
import json
import logging
import os

from ..contracts.base import (
    UnknownRecordError, clamp, coerce_text, parse_timestamp,
    start_of_day, to_input_date, to_iso,
)
from ..contracts.records import (
    DIMENSION_KEYS, OUTCOME_NO, OUTCOME_YES, STATUS_DONE,
    default_targets, derive_status,
)
from ..contracts.snapshot import Snapshot
from ..temporal.clock import LogicalClock

logger = logging.getLogger(__name__)


KEY_VISION_STATE = 'visionModeState'
KEY_SNAPSHOTS = 'visionModeSnapshots'
KEY_DECISIONS = 'visionDecisionLog'
KEY_FINANCE = 'finance'
KEY_HABITS = 'habits'
KEY_HABIT_STATUS = 'habitStatus'


# =============================================================================
# STORAGE BACKENDS
# =============================================================================

class KeyValueBackend:
    """
    Abstract key -> JSON value backend.

    Implementations store JSON-serialisable values; `read` returns None
    for missing or unreadable keys.
    """

    def read(self, key: str) -> Any:
        raise NotImplementedError

    def write(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class InMemoryKeyValueBackend(KeyValueBackend):
    """
    In-memory backend holding serialised JSON text.

    Values round-trip through json so callers observe the same typing
    as the file backend.
    """

    def __init__(self):
        self._blobs: Dict[str, str] = {}

    def read(self, key: str) -> Any:
        blob = self._blobs.get(key)
        if blob is None:
            return None
        try:
            return json.loads(blob)
        except ValueError:
            logger.debug("Unreadable blob for key %s", key)
            return None

    def write(self, key: str, value: Any) -> None:
        self._blobs[key] = json.dumps(value, sort_keys=True)

    def write_raw(self, key: str, blob: str) -> None:
        """Store text verbatim (used to simulate corrupted storage)."""
        self._blobs[key] = blob

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._blobs)


class FileKeyValueBackend(KeyValueBackend):
    """One `<key>.json` file per key under `storage_dir`."""

    def __init__(self, storage_dir: str):
        self._dir = storage_dir
        os.makedirs(self._dir, exist_ok=True)

    def _path(self, key: str) -> str:
        safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in key)
        return os.path.join(self._dir, f"{safe}.json")

    def read(self, key: str) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError):
            logger.warning("Unreadable storage file %s", path, exc_info=True)
            return None

    def write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(value, f, indent=2, sort_keys=True)
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    def keys(self) -> List[str]:
        return sorted(
            name[:-5] for name in os.listdir(self._dir) if name.endswith('.json')
        )


@dataclass
class StorageConfig:
    """Configuration for record storage."""
    backend_type: str = "memory"  # "memory" or "file"
    storage_dir: str = "./data/lifeos"
    decision_log_limit: int = 200
    snapshot_history_limit: int = 96
    weekly_commitment_limit: int = 3

    def create_backend(self) -> KeyValueBackend:
        if self.backend_type == "file":
            return FileKeyValueBackend(self.storage_dir)
        return InMemoryKeyValueBackend()


# =============================================================================
# SANITISATION
# =============================================================================

def _default_vision_state(timestamp: str) -> Dict[str, Any]:
    return {
        'version': 2,
        'updatedAt': timestamp,
        'northStar': '',
        'oneYearDirection': '',
        'fiveYearDirection': '',
        'themes': [],
        'milestones': [],
        'weeklyCommitmentIds': [],
        'targets': default_targets(),
        'lastCompute': None,
    }


def _sanitize_theme(entry: Any, timestamp: str, make_id: Callable[[str], str]) -> Optional[Dict[str, Any]]:
    data = entry if isinstance(entry, Mapping) else {'label': entry}
    label = coerce_text(data.get('label'))
    if not label:
        return None
    weight = data.get('weight')
    return {
        'id': coerce_text(data.get('id')) or make_id('theme'),
        'label': label,
        'weight': clamp(weight, 1, 10) if weight is not None else 3,
        'createdAt': data.get('createdAt') or timestamp,
        'updatedAt': data.get('updatedAt') or timestamp,
    }


def _sanitize_milestone(entry: Any, timestamp: str, make_id: Callable[[str], str]) -> Dict[str, Any]:
    data = entry if isinstance(entry, Mapping) else {}
    completion = clamp(data.get('completionPct'), 0, 100)
    status = derive_status(completion)
    return {
        'id': coerce_text(data.get('id')) or make_id('ms'),
        'title': coerce_text(data.get('title')) or 'New milestone',
        'date': to_input_date(data.get('date')),
        'visionType': coerce_text(data.get('visionType')) or 'Custom',
        'completionPct': completion,
        'status': status,
        'nextAction': '' if status == STATUS_DONE else (coerce_text(data.get('nextAction')) or 'Define next action'),
        'blocker': coerce_text(data.get('blocker')),
        'notes': coerce_text(data.get('notes')),
        'linkedProjectId': data.get('linkedProjectId') or None,
        'createdAt': data.get('createdAt') or timestamp,
        'updatedAt': data.get('updatedAt') or timestamp,
    }


def sanitize_vision_state(
    raw: Any,
    timestamp: str,
    make_id: Callable[[str], str],
    commitment_limit: int = 3
) -> Dict[str, Any]:
    """
    Normalise a raw vision record.

    Themes are de-duplicated case-insensitively; weekly commitments keep
    only existing, not-done milestone ids, at most `commitment_limit`.
    """
    base = raw if isinstance(raw, Mapping) else {}
    targets = default_targets()
    raw_targets = base.get('targets') if isinstance(base.get('targets'), Mapping) else {}
    for key in DIMENSION_KEYS:
        if key in raw_targets:
            targets[key] = clamp(raw_targets[key], 0, 100)

    themes: List[Dict[str, Any]] = []
    seen_labels = set()
    for entry in base.get('themes') if isinstance(base.get('themes'), list) else []:
        theme = _sanitize_theme(entry, timestamp, make_id)
        if theme is None or theme['label'].lower() in seen_labels:
            continue
        seen_labels.add(theme['label'].lower())
        themes.append(theme)

    milestones = [
        _sanitize_milestone(entry, timestamp, make_id)
        for entry in (base.get('milestones') if isinstance(base.get('milestones'), list) else [])
    ]
    open_ids = {m['id'] for m in milestones if m['status'] != STATUS_DONE}

    commitments: List[str] = []
    for raw_id in base.get('weeklyCommitmentIds') if isinstance(base.get('weeklyCommitmentIds'), list) else []:
        value = coerce_text(raw_id)
        if value in open_ids and value not in commitments:
            commitments.append(value)

    return {
        'version': 2,
        'updatedAt': base.get('updatedAt') or timestamp,
        'northStar': coerce_text(base.get('northStar')),
        'oneYearDirection': coerce_text(base.get('oneYearDirection')),
        'fiveYearDirection': coerce_text(base.get('fiveYearDirection')),
        'themes': themes,
        'milestones': milestones,
        'weeklyCommitmentIds': commitments[:commitment_limit],
        'targets': targets,
        'lastCompute': base.get('lastCompute') if isinstance(base.get('lastCompute'), Mapping) else None,
    }


def _sort_key_by_time(field_name: str) -> Callable[[Mapping[str, Any]], Any]:
    def key(record: Mapping[str, Any]):
        parsed = parse_timestamp(record.get(field_name))
        return (parsed is None, parsed.timestamp() if parsed else 0.0)
    return key


# =============================================================================
# RECORD STORE (Accessors)
# =============================================================================

class RecordStore:
    """
    Flat accessor API over the persisted records.

    Operations that create/update/delete/toggle/reset/clear/seed records
    are listed as mutating in `reactive.interceptor.OPERATION_TABLE`;
    everything here is plain persistence with no knowledge of caches.
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        config: Optional[StorageConfig] = None,
        clock: Optional[LogicalClock] = None
    ):
        self._config = config or StorageConfig()
        self._backend = backend or self._config.create_backend()
        self._clock = clock or LogicalClock.live()
        self._id_counter = 0

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def clock(self) -> LogicalClock:
        return self._clock

    # -------------------------------------------------------------------------
    # internals
    # -------------------------------------------------------------------------

    def _now_iso(self) -> str:
        return to_iso(self._clock.now())

    def _make_id(self, prefix: str) -> str:
        self._id_counter += 1
        seed = f"{prefix}|{self._now_iso()}|{self._id_counter}"
        return f"{prefix}-{hashlib.sha256(seed.encode()).hexdigest()[:12]}"

    def _read(self, key: str, fallback: Any) -> Any:
        value = self._backend.read(key)
        return fallback if value is None else value

    def _sanitize(self, raw: Any) -> Dict[str, Any]:
        return sanitize_vision_state(
            raw, self._now_iso(), self._make_id, self._config.weekly_commitment_limit
        )

    def _load_vision(self) -> Dict[str, Any]:
        raw = self._backend.read(KEY_VISION_STATE)
        if raw is None:
            return _default_vision_state(self._now_iso())
        return self._sanitize(raw)

    def _mutate_vision(self, mutator: Callable[[Dict[str, Any]], None]) -> Dict[str, Any]:
        state = self._load_vision()
        mutator(state)
        state['updatedAt'] = self._now_iso()
        sanitized = self._sanitize(state)
        self._backend.write(KEY_VISION_STATE, sanitized)
        return copy.deepcopy(sanitized)

    def _find_milestone(self, state: Dict[str, Any], milestone_id: str) -> Dict[str, Any]:
        for milestone in state['milestones']:
            if milestone['id'] == milestone_id:
                return milestone
        raise UnknownRecordError(f"Milestone {milestone_id} not found")

    # -------------------------------------------------------------------------
    # vision state
    # -------------------------------------------------------------------------

    def get_vision_state(self) -> Dict[str, Any]:
        return copy.deepcopy(self._load_vision())

    def save_vision_state(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        sanitized = self._sanitize(copy.deepcopy(dict(state)))
        sanitized['updatedAt'] = self._now_iso()
        self._backend.write(KEY_VISION_STATE, sanitized)
        return copy.deepcopy(sanitized)

    def reset_vision_state(self) -> Dict[str, Any]:
        state = _default_vision_state(self._now_iso())
        self._backend.write(KEY_VISION_STATE, state)
        return copy.deepcopy(state)

    def update_north_star(self, text: str) -> Dict[str, Any]:
        def apply(state):
            state['northStar'] = coerce_text(text)
        return self._mutate_vision(apply)

    def update_time_horizons(self, one_year: str, five_year: str) -> Dict[str, Any]:
        def apply(state):
            state['oneYearDirection'] = coerce_text(one_year)
            state['fiveYearDirection'] = coerce_text(five_year)
        return self._mutate_vision(apply)

    def update_targets(self, targets: Mapping[str, Any]) -> Dict[str, float]:
        def apply(state):
            for key in DIMENSION_KEYS:
                if key in targets:
                    state['targets'][key] = clamp(targets[key], 0, 100)
        return self._mutate_vision(apply)['targets']

    # -------------------------------------------------------------------------
    # themes
    # -------------------------------------------------------------------------

    def get_themes(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._load_vision()['themes'])

    def add_theme(self, label: str, weight: float = 3) -> List[Dict[str, Any]]:
        trimmed = coerce_text(label)
        if not trimmed:
            return self.get_themes()

        def apply(state):
            if any(t['label'].lower() == trimmed.lower() for t in state['themes']):
                return
            state['themes'].append({'label': trimmed, 'weight': weight})
        return self._mutate_vision(apply)['themes']

    def remove_theme(self, theme_id: str) -> List[Dict[str, Any]]:
        def apply(state):
            state['themes'] = [t for t in state['themes'] if t['id'] != theme_id]
        return self._mutate_vision(apply)['themes']

    # -------------------------------------------------------------------------
    # milestones
    # -------------------------------------------------------------------------

    def get_milestones(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._load_vision()['milestones'])

    def get_milestone(self, milestone_id: str) -> Optional[Dict[str, Any]]:
        for milestone in self.get_milestones():
            if milestone['id'] == milestone_id:
                return milestone
        return None

    def add_milestone(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a milestone; a title is required."""
        title = coerce_text(payload.get('title'))
        if not title:
            raise ValueError("Milestone title is required")
        new_id = coerce_text(payload.get('id')) or self._make_id('ms')

        def apply(state):
            if any(m['id'] == new_id for m in state['milestones']):
                raise ValueError(f"Milestone {new_id} already exists")
            record = dict(payload)
            record.update({'id': new_id, 'title': title, 'createdAt': None, 'updatedAt': None})
            state['milestones'].append(record)

        state = self._mutate_vision(apply)
        return self._find_milestone(state, new_id)

    def update_milestone(self, milestone_id: str, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a partial update; completing a milestone drops its commitment."""
        def apply(state):
            milestone = self._find_milestone(state, milestone_id)
            if 'title' in updates and coerce_text(updates['title']):
                milestone['title'] = coerce_text(updates['title'])
            if 'date' in updates:
                milestone['date'] = to_input_date(updates['date'])
            if 'visionType' in updates:
                milestone['visionType'] = coerce_text(updates['visionType']) or 'Custom'
            if 'completionPct' in updates:
                milestone['completionPct'] = clamp(updates['completionPct'], 0, 100)
            for key in ('nextAction', 'blocker', 'notes'):
                if key in updates:
                    milestone[key] = coerce_text(updates[key])
            if 'linkedProjectId' in updates:
                milestone['linkedProjectId'] = updates['linkedProjectId'] or None

            milestone['status'] = derive_status(milestone['completionPct'])
            if milestone['status'] == STATUS_DONE:
                state['weeklyCommitmentIds'] = [
                    i for i in state['weeklyCommitmentIds'] if i != milestone_id
                ]
            milestone['updatedAt'] = self._now_iso()

        state = self._mutate_vision(apply)
        return self._find_milestone(state, milestone_id)

    def remove_milestone(self, milestone_id: str) -> List[Dict[str, Any]]:
        def apply(state):
            self._find_milestone(state, milestone_id)
            state['milestones'] = [m for m in state['milestones'] if m['id'] != milestone_id]
            state['weeklyCommitmentIds'] = [
                i for i in state['weeklyCommitmentIds'] if i != milestone_id
            ]
        return self._mutate_vision(apply)['milestones']

    def toggle_weekly_commitment(self, milestone_id: str) -> List[str]:
        """Add or drop a weekly commitment; done or unknown ids are ignored."""
        limit = self._config.weekly_commitment_limit

        def apply(state):
            exists = any(
                m['id'] == milestone_id and m['status'] != STATUS_DONE
                for m in state['milestones']
            )
            if not exists:
                return
            current = state['weeklyCommitmentIds']
            if milestone_id in current:
                current.remove(milestone_id)
            elif len(current) < limit:
                current.append(milestone_id)
        return self._mutate_vision(apply)['weeklyCommitmentIds']

    # -------------------------------------------------------------------------
    # decisions
    # -------------------------------------------------------------------------

    def get_decision_log(self) -> List[Dict[str, Any]]:
        log = self._read(KEY_DECISIONS, [])
        entries = [e for e in log if isinstance(e, Mapping)] if isinstance(log, list) else []
        return sorted(entries, key=_sort_key_by_time('createdAt'))

    def log_decision(self, entry: Mapping[str, Any]) -> Dict[str, Any]:
        alignment = entry.get('alignmentAtDecision')
        drift = entry.get('driftAtDecision')
        record = {
            'id': self._make_id('decision'),
            'createdAt': self._now_iso(),
            'decision': OUTCOME_NO if entry.get('decision') == OUTCOME_NO else OUTCOME_YES,
            'contextMode': coerce_text(entry.get('contextMode')) or 'vision',
            'energyState': coerce_text(entry.get('energyState')) or None,
            'note': coerce_text(entry.get('note')) or None,
            'alignmentAtDecision': clamp(alignment if alignment is not None else 50, 0, 100),
            'driftAtDecision': clamp(drift if drift is not None else 0, -100, 100),
            'visionType': coerce_text(entry.get('visionType')) or 'Custom',
        }
        log = self.get_decision_log()
        log.append(record)
        self._backend.write(KEY_DECISIONS, log[-self._config.decision_log_limit:])
        return copy.deepcopy(record)

    # -------------------------------------------------------------------------
    # snapshots (append-only history)
    # -------------------------------------------------------------------------

    def get_snapshots(self) -> List[Dict[str, Any]]:
        history = self._read(KEY_SNAPSHOTS, [])
        entries = [s for s in history if isinstance(s, Mapping)] if isinstance(history, list) else []
        return sorted(entries, key=_sort_key_by_time('computedAt'))

    def get_latest_snapshot(self) -> Optional[Dict[str, Any]]:
        history = self.get_snapshots()
        return history[-1] if history else None

    def save_snapshot(
        self,
        snapshot: Any,
        metadata: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Append a snapshot (deep copy) and record it as the last compute."""
        record = snapshot.to_dict() if isinstance(snapshot, Snapshot) else copy.deepcopy(dict(snapshot))
        if metadata:
            record['metadata'] = copy.deepcopy(dict(metadata))

        history = self.get_snapshots()
        history.append(record)
        limit = self._config.snapshot_history_limit
        self._backend.write(KEY_SNAPSHOTS, history[-limit:])

        def apply(state):
            state['lastCompute'] = copy.deepcopy(record)
        self._mutate_vision(apply)
        return copy.deepcopy(record)

    # -------------------------------------------------------------------------
    # finance and habits (external signals)
    # -------------------------------------------------------------------------

    def get_finance_snapshot(self) -> Optional[Dict[str, Any]]:
        finance = self._backend.read(KEY_FINANCE)
        return copy.deepcopy(finance) if isinstance(finance, Mapping) else None

    def save_finance_snapshot(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(dict(data))
        self._backend.write(KEY_FINANCE, record)
        return record

    def get_habits(self) -> List[Dict[str, Any]]:
        habits = self._read(KEY_HABITS, [])
        return [h for h in habits if isinstance(h, Mapping)] if isinstance(habits, list) else []

    def save_habits(self, habits: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        records = []
        for habit in habits:
            name = coerce_text(habit.get('name'))
            if name:
                records.append({'id': coerce_text(habit.get('id')) or self._make_id('habit'), 'name': name})
        self._backend.write(KEY_HABITS, records)
        return copy.deepcopy(records)

    def _habit_status(self) -> Dict[str, Any]:
        today = start_of_day(self._clock.now()).date().isoformat()
        status = self._read(KEY_HABIT_STATUS, {})
        if not isinstance(status, Mapping) or status.get('date') != today:
            return {'date': today, 'done': []}
        done = status.get('done') if isinstance(status.get('done'), list) else []
        return {'date': today, 'done': [str(d) for d in done]}

    def toggle_habit(self, habit_id: str) -> bool:
        """Flip today's completion for a habit; returns the new state."""
        if not any(h.get('id') == habit_id for h in self.get_habits()):
            raise UnknownRecordError(f"Habit {habit_id} not found")
        status = self._habit_status()
        if habit_id in status['done']:
            status['done'].remove(habit_id)
            completed = False
        else:
            status['done'].append(habit_id)
            completed = True
        self._backend.write(KEY_HABIT_STATUS, status)
        return completed

    def get_habit_completion_rate(self) -> Optional[float]:
        """Today's completed fraction in [0, 1]; None when no habits exist."""
        habits = self.get_habits()
        if not habits:
            return None
        known = {h.get('id') for h in habits}
        done = [d for d in self._habit_status()['done'] if d in known]
        return len(done) / len(habits)

    # -------------------------------------------------------------------------
    # maintenance
    # -------------------------------------------------------------------------

    def clear_all(self) -> None:
        for key in self._backend.keys():
            self._backend.delete(key)

    def seed_demo_data(self) -> Dict[str, Any]:
        """Populate an empty store with a small example plan."""
        self.save_habits([{'name': 'Morning walk'}, {'name': 'Deep work block'}, {'name': 'Read'}])
        state = {
            'northStar': 'Build a calm, creative, self-directed life.',
            'themes': [
                {'label': 'Craft', 'weight': 8},
                {'label': 'Health', 'weight': 6},
                {'label': 'Community', 'weight': 4},
            ],
            'milestones': [
                {'id': 'ms-demo-site', 'title': 'Launch portfolio site', 'visionType': 'Income',
                 'completionPct': 40, 'nextAction': 'Write case study copy'},
                {'id': 'ms-demo-album', 'title': 'Finish EP demos', 'visionType': 'Creation',
                 'completionPct': 15, 'nextAction': 'Record vocal takes'},
                {'id': 'ms-demo-run', 'title': 'Run a 10k', 'visionType': 'Health',
                 'completionPct': 60, 'nextAction': 'Long run on Sunday'},
            ],
            'weeklyCommitmentIds': ['ms-demo-site'],
            'targets': {'incomeStability': 70, 'creativeOutput': 80},
        }
        return self.save_vision_state(state)
