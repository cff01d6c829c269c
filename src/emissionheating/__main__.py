from emissionheating.main import main

raise SystemExit(main())
