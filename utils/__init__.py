# Utils package - cross-cutting helpers shared by routes and services
