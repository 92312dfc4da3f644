from service_checks.main import main

raise SystemExit(main())
