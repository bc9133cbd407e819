from wbcrm.catalog.models import ICP, BusinessLine, ICPVersion, Product

__all__ = ["BusinessLine", "Product", "ICP", "ICPVersion"]
