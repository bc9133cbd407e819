from wbcrm.cadences.models import Cadence, CadenceStep, LeadCadence, LeadCadenceActivity

__all__ = ["Cadence", "CadenceStep", "LeadCadence", "LeadCadenceActivity"]
