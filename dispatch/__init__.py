#Dispatch package: the decision pipeline (the "glue").
#state_machines/  transition tables for orders and partners (pure)
#dispatcher.py    push offers, pull queries, race-free accept / decline
#services.py      wires every service into one Marketplace
#Import the modules directly; this file stays import-free so the state
#machines can be used from lower layers without pulling in the dispatcher.
