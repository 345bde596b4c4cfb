from slidegen.cli import main


raise SystemExit(main())
