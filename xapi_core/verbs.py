"""
xapi_core/verbs.py — Commonly used xAPI Verbs.

ADL vocabulary verbs with an undetermined-language display, as clients
conventionally send them.

Reference: http://adlnet.gov/expapi/verbs/
"""

from .model import Verb


def _adl(name: str, base: str = "http://adlnet.gov/expapi/verbs/") -> Verb:
    return Verb(id=base + name, display={"und": name})


ABANDONED = _adl("abandoned", "https://w3id.org/xapi/adl/verbs/")
ANSWERED = _adl("answered")
ASKED = _adl("asked")
ATTEMPTED = _adl("attempted")
ATTENDED = _adl("attended")
COMMENTED = _adl("commented")
COMPLETED = _adl("completed")
EXITED = _adl("exited")
EXPERIENCED = _adl("experienced")
FAILED = _adl("failed")
IMPORTED = _adl("imported")
INITIALIZED = _adl("initialized")
INTERACTED = _adl("interacted")
LAUNCHED = _adl("launched")
LOGGED_IN = _adl("logged-in", "https://w3id.org/xapi/adl/verbs/")
LOGGED_OUT = _adl("logged-out", "https://w3id.org/xapi/adl/verbs/")
MASTERED = _adl("mastered")
PASSED = _adl("passed")
PREFERRED = _adl("preferred")
PROGRESSED = _adl("progressed")
REGISTERED = _adl("registered")
RESPONDED = _adl("responded")
RESUMED = _adl("resumed")
SATISFIED = _adl("satisfied", "https://w3id.org/xapi/adl/verbs/")
SCORED = _adl("scored")
SHARED = _adl("shared")
SUSPENDED = _adl("suspended")
TERMINATED = _adl("terminated")
VOIDED = _adl("voided")
WAIVED = _adl("waived", "https://w3id.org/xapi/adl/verbs/")
