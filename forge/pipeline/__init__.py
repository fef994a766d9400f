"""Adventure state machine and response-recovery pipeline.

Flow for one adventure:
  1. GenreSelected → SelectingPersona (journal filtered, inventory cleared).
  2. PersonaSelected → FetchOutline.
  3. OutlineLoaded → FetchWorld.
  4. WorldLoaded → FetchSegment (initial scene).
  5. SegmentLoaded → scene accepted: journal, inventory merge, terminal
     flags, then FetchImage when images are on and the scene is not terminal.
  6. ChoiceSelected / CustomActionSubmitted → next FetchSegment /
     FetchCustomAction. ExamineRequested → FetchExamination (read-only).

Failures arrive as *Failed events carrying a tagged Failure. The reducer
records an error and a RetryInfo; RetryRequested hands that to
retry.plan_retry, which re-enters the machine at the right point.

Modules:
  extractors  JSON extraction from raw provider text
  events      events and effects
  core        the reducer
  retry       retry planning and recovery actions
  runner      async effect executor (imported directly, not re-exported)
"""

from .core import reduce  # noqa: F401
from .events import *  # noqa: F401,F403
from .extractors import extract_candidate, extract_json  # noqa: F401
from .retry import (  # noqa: F401
    RecoveryAction,
    available_actions,
    demote_repair,
    plan_retry,
)
