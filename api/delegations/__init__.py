"""
Tezos delegations: TzKT sync loop, persistence and the read endpoint.
"""
