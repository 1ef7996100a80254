"""storefront: catalog with size-based pricing and bank-transfer checkout."""

__version__ = "0.1.0"
