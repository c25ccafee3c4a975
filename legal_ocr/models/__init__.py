"""Domain records shared by services and routers."""
