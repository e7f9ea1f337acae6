"""Storefront checkout: turns carts into priced, immutable orders."""
