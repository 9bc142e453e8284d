"""
Commerce - sales, returns and the purchase-order lifecycle for one pharmacy
"""
