"""Compare directory trees and run related filesystem bookkeeping."""
