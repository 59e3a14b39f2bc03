"""
Cooperative Services Package
============================

Business rules behind the loan portal:
- config: cached business configuration
- aggregators: savings and loan summaries per member
- eligibility: loan eligibility evaluation
- savings / penalties: savings rules and late-payment penalties
- credit: member credit scoring
- workflow: approval routing
- applications: the loan application transaction

Import directly from submodules:
    from cooperative.services.eligibility import EligibilityEvaluator
"""
