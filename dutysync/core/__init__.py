"""Pure swap-approval domain: hierarchy, approval levels, authorization, aggregate."""
